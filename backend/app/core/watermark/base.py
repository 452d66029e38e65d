from backend.app.core.models import ProcessedFile, SourceFile, Watermark, WatermarkOptions


class Compositor:
    """
    Base class for all compositors.
    Any compositor must implement the apply() method.
    """

    def apply(
        self,
        source: SourceFile,
        watermark: Watermark,
        options: WatermarkOptions,
        work_dir: str = None,
    ) -> ProcessedFile:
        raise NotImplementedError("Compositor must implement apply()")
