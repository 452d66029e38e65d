"""
Video Compositor
Wrapper around the ffprobe / ffmpeg executables.

Each file runs two blocking subprocesses in sequence:
- ffprobe: read the first video stream's width and height (JSON output)
- ffmpeg: scale the watermark, multiply its alpha by the opacity and
  overlay it on every frame; audio is copied untouched when present

No timeout is applied to either call. A hung ffmpeg stalls that file.
"""

import json
import logging
import os
import re
import subprocess
import tempfile
import uuid
from pathlib import Path
from typing import List, Optional, Tuple

from backend.app.core.errors import NoVideoStream, ProbeFailed, TranscodeFailed
from backend.app.core.models import ProcessedFile, SourceFile, Watermark, WatermarkOptions
from backend.app.core.watermark.base import Compositor
from backend.app.core.watermark.geometry import resolve_expression, round_half_up

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = (".mp4", ".mov", ".avi", ".mkv", ".webm")

DEFAULT_VIDEO_CODEC = ["-c:v", "libx264", "-preset", "fast"]

# WebM only carries VP8/VP9/AV1 video
VIDEO_CODECS = {
    ".webm": ["-c:v", "libvpx-vp9"],
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def _creationflags() -> int:
    return subprocess.CREATE_NO_WINDOW if os.name == "nt" else 0


def _safe_unlink(path: Optional[Path]):
    """Delete a temp file; failures are logged, never raised."""
    if path is None:
        return
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not delete temp file %s: %s", path, e)


def _temp_path(directory: str, name: str, suffix: str = "") -> Path:
    """Unique path inside `directory`: <token>-<sanitized name><suffix>."""
    stem = _UNSAFE_CHARS.sub("_", Path(name).name) or "file"
    return Path(directory) / f"{uuid.uuid4().hex}-{stem}{suffix}"


def build_filter_graph(video_width: int, options: WatermarkOptions) -> str:
    """
    ffmpeg filter graph overlaying input 1 (watermark) onto input 0.

    The watermark height is left to ffmpeg (-1) so it keeps its aspect ratio.
    """
    wm_width = max(1, round_half_up(video_width * options.scale))
    position = resolve_expression(options.position)
    return (
        f"[1:v]scale={wm_width}:-1[wm];"
        f"[wm]format=rgba,colorchannelmixer=aa={options.opacity}[wm_opacity];"
        f"[0:v][wm_opacity]overlay={position.overlay}[outv]"
    )


class VideoCompositor(Compositor):
    """Watermarks videos by re-encoding them through ffmpeg."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe"):
        """
        Args:
            ffmpeg_path: ffmpeg executable (name on PATH or full path)
            ffprobe_path: ffprobe executable (name on PATH or full path)
        """
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path

    def probe(self, video_path: Path) -> Tuple[int, int]:
        """
        Return (width, height) of the first video stream.

        Raises:
            ProbeFailed: ffprobe could not run, exited non-zero or printed
                         output that is not the expected JSON
            NoVideoStream: the file has no video stream
        """
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-select_streams", "v:0",
            "-show_entries", "stream=width,height",
            "-of", "json",
            str(video_path),
        ]

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                creationflags=_creationflags()
            )
        except OSError as e:
            raise ProbeFailed(f"Failed to probe video: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or b"").decode("utf-8", errors="replace").strip()
            logger.warning("ffprobe exited with %s: %s", result.returncode, stderr[-500:])
            raise ProbeFailed("Failed to probe video")

        try:
            metadata = json.loads((result.stdout or b"").decode("utf-8", errors="replace"))
        except ValueError as e:
            raise ProbeFailed(f"Failed to probe video: unreadable ffprobe output ({e})") from e

        if not isinstance(metadata, dict):
            raise ProbeFailed("Failed to probe video: unexpected ffprobe output")

        streams = metadata.get("streams") or []
        if not streams:
            raise NoVideoStream()

        try:
            return int(streams[0]["width"]), int(streams[0]["height"])
        except (KeyError, TypeError, ValueError) as e:
            raise ProbeFailed(f"Failed to probe video: missing stream dimensions ({e})") from e

    def build_command(
        self,
        input_path: Path,
        watermark_path: Path,
        output_path: Path,
        filter_graph: str,
    ) -> List[str]:
        codec_args = VIDEO_CODECS.get(output_path.suffix.lower(), DEFAULT_VIDEO_CODEC)
        return [
            self.ffmpeg_path,
            "-i", str(input_path),
            "-i", str(watermark_path),
            "-filter_complex", filter_graph,
            "-map", "[outv]",
            "-map", "0:a?",
            *codec_args,
            "-c:a", "copy",
            "-y",
            str(output_path),
        ]

    def transcode(self, cmd: List[str]):
        """Run ffmpeg; raise TranscodeFailed unless it exits with 0."""
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                creationflags=_creationflags()
            )
        except OSError as e:
            raise TranscodeFailed(-1, f"FFmpeg could not be started: {e}") from e

        if result.returncode != 0:
            stderr = (result.stderr or b"").decode("utf-8", errors="replace").strip()
            logger.warning("ffmpeg exited with %s: %s", result.returncode, stderr[-500:])
            raise TranscodeFailed(result.returncode)

    def apply(
        self,
        source: SourceFile,
        watermark: Watermark,
        options: WatermarkOptions,
        work_dir: str = None,
    ) -> ProcessedFile:
        directory = work_dir or tempfile.gettempdir()
        Path(directory).mkdir(parents=True, exist_ok=True)
        suffix = Path(source.name).suffix.lower()

        input_path: Optional[Path] = None
        watermark_path: Optional[Path] = None
        owned_watermark: Optional[Path] = None
        output_path: Optional[Path] = None

        try:
            input_path = _temp_path(directory, source.name)
            input_path.write_bytes(source.content)

            if watermark.path and Path(watermark.path).exists():
                watermark_path = Path(watermark.path)
            else:
                owned_watermark = _temp_path(directory, "watermark.png")
                owned_watermark.write_bytes(watermark.content)
                watermark_path = owned_watermark

            width, height = self.probe(input_path)
            logger.debug("Probed %s: %dx%d", source.name, width, height)

            output_path = _temp_path(directory, "output", suffix)
            cmd = self.build_command(
                input_path,
                watermark_path,
                output_path,
                build_filter_graph(width, options)
            )
            self.transcode(cmd)

            return ProcessedFile(name=source.name, content=output_path.read_bytes())

        finally:
            _safe_unlink(input_path)
            _safe_unlink(owned_watermark)
            _safe_unlink(output_path)
