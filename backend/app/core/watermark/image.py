"""
Image Compositor
Overlays a watermark image onto a still image using Pillow.

Steps:
1. Decode the source and read its size
2. Scale the watermark to `scale` x source width, keeping its aspect ratio
3. Multiply the watermark alpha by a uniform opacity mask (destination-in)
4. Paste it at the anchor offset and alpha-composite onto the source
5. Encode in the source's own format, mapping palette sources back onto their palette
"""

import io
import logging
from typing import Tuple

from PIL import Image, ImageChops

from backend.app.core.errors import DecodeError, WatermarkUnreadable
from backend.app.core.models import ProcessedFile, SourceFile, Watermark, WatermarkOptions
from backend.app.core.watermark.base import Compositor
from backend.app.core.watermark.geometry import resolve_offset, round_half_up

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")

# Pillow format name -> save() keyword arguments
SAVE_OPTIONS = {
    "JPEG": {"quality": 95},
    "WEBP": {"quality": 95},
}

_PASSTHROUGH_MODES = ("RGB", "RGBA", "L", "LA", "P")


def _decode(content: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(content))
    image.load()
    return image


def load_watermark(content: bytes) -> Image.Image:
    """
    Decode watermark bytes into an RGBA image.

    Raises WatermarkUnreadable: no file in the batch can be processed
    without a readable watermark.
    """
    if not content:
        raise WatermarkUnreadable("Watermark file is empty")
    try:
        return _decode(content).convert("RGBA")
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise WatermarkUnreadable(f"Watermark image could not be read: {e}") from e


def scaled_size(source_width: int, watermark_size: Tuple[int, int], scale: float) -> Tuple[int, int]:
    """Watermark size for a container of `source_width`, aspect ratio preserved."""
    wm_width, wm_height = watermark_size
    target_width = max(1, round_half_up(source_width * scale))
    target_height = max(1, round_half_up(wm_height * target_width / wm_width))
    return target_width, target_height


def apply_opacity(watermark: Image.Image, opacity: float) -> Image.Image:
    """
    Scale the watermark's alpha channel uniformly.

    The result alpha is `alpha * round(255 * opacity) / 255`, so 1.0 keeps the
    watermark's own alpha and 0.0 makes it fully transparent.
    """
    watermark = watermark.convert("RGBA")
    mask = Image.new("L", watermark.size, round_half_up(255 * opacity))
    alpha = ImageChops.multiply(watermark.getchannel("A"), mask)

    result = watermark.copy()
    result.putalpha(alpha)
    return result


def composite(base_image: Image.Image, watermark: Image.Image, options: WatermarkOptions) -> Image.Image:
    """Return a new RGBA image with the watermark applied per `options`."""
    base = base_image.convert("RGBA")
    width, height = base.size

    size = scaled_size(width, watermark.size, options.scale)
    overlay = apply_opacity(watermark.resize(size, Image.Resampling.LANCZOS), options.opacity)

    offset = resolve_offset(width, height, overlay.width, overlay.height, options.position)

    # paste() clips anything that falls outside the canvas
    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    layer.paste(overlay, (offset.left, offset.top))

    return Image.alpha_composite(base, layer)


def _changed_box(before: Image.Image, after: Image.Image):
    """Bounding box of the pixels that differ between two RGBA images, or None."""
    bands = ImageChops.difference(before, after).split()
    mask = bands[0]
    for band in bands[1:]:
        mask = ImageChops.lighter(mask, band)
    return mask.getbbox()


def restore_palette(source: Image.Image, result: Image.Image) -> Image.Image:
    """
    Map a composited RGBA image back onto the palette of a "P" source.

    Only the area the watermark changed is quantized; every other pixel
    keeps its original palette index.
    """
    output = source.copy()
    box = _changed_box(source.convert("RGBA"), result)
    if box is None:
        return output

    region = result.crop(box).convert("RGB").quantize(palette=source, dither=Image.Dither.NONE)
    output.paste(region, box[:2])
    return output


def _output_mode(source_mode: str, image_format: str) -> str:
    if image_format == "JPEG":
        return source_mode if source_mode in ("RGB", "L", "CMYK") else "RGB"
    if source_mode in _PASSTHROUGH_MODES:
        return source_mode
    return "RGBA"


def encode(image: Image.Image, image_format: str, source_mode: str, info: dict = None) -> bytes:
    """Encode `image` as `image_format`, converting to a mode the format accepts."""
    mode = _output_mode(source_mode, image_format)
    output = image if image.mode == mode else image.convert(mode)

    save_kwargs = dict(SAVE_OPTIONS.get(image_format, {}))
    if info and info.get("icc_profile"):
        save_kwargs["icc_profile"] = info["icc_profile"]
    if info and output.mode == "P" and info.get("transparency") is not None:
        save_kwargs["transparency"] = info["transparency"]

    buffer = io.BytesIO()
    output.save(buffer, format=image_format, **save_kwargs)
    return buffer.getvalue()


class ImageCompositor(Compositor):
    """Watermarks still images (JPEG, PNG, GIF, WebP)."""

    def apply(
        self,
        source: SourceFile,
        watermark: Watermark,
        options: WatermarkOptions,
        work_dir: str = None,
    ) -> ProcessedFile:
        try:
            base_image = _decode(source.content)
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise DecodeError(f"Could not decode image {source.name}: {e}") from e

        image_format = base_image.format or "PNG"
        source_mode = base_image.mode

        wm_image = watermark.image
        if wm_image is None:
            try:
                wm_image = _decode(watermark.content).convert("RGBA")
            except (OSError, ValueError) as e:
                raise DecodeError(f"Could not decode watermark: {e}") from e

        result = composite(base_image, wm_image, options)

        try:
            if source_mode == "P":
                result = restore_palette(base_image, result)
            content = encode(result, image_format, source_mode, base_image.info)
        except (OSError, ValueError, KeyError) as e:
            raise DecodeError(f"Could not encode {source.name} as {image_format}: {e}") from e

        logger.debug(
            "Watermarked image %s (%dx%d, %s)",
            source.name, base_image.width, base_image.height, image_format
        )
        return ProcessedFile(name=source.name, content=content)
