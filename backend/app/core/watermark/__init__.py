"""
Watermark compositors.

Import the concrete modules directly:
    from backend.app.core.watermark.image import ImageCompositor
    from backend.app.core.watermark.video import VideoCompositor
"""
