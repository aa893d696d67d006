"""
Background removal for photographed or scanned signatures.

Turns an arbitrary raster image of ink on light paper into a PNG whose
alpha channel follows the ink: paper becomes transparent, strokes stay
opaque, and stroke edges keep their anti-aliasing.
"""

import logging
from io import BytesIO

from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

ALPHA_GAMMA = 1.7
ALPHA_GAIN = 1.25
ALPHA_OFFSET = -10
RGB_GAIN = 1.2
RGB_OFFSET = -8
MEDIAN_SIZE = 3


def _clamp_byte(value: float) -> int:
    return max(0, min(255, int(round(value))))


# Inverted luminance -> alpha: gamma pushes faint paper texture toward 0,
# then a linear boost saturates the strokes
_ALPHA_LUT = [
    _clamp_byte(ALPHA_GAIN * (255.0 * (v / 255.0) ** ALPHA_GAMMA) + ALPHA_OFFSET) for v in range(256)
]
_RGB_LUT = [_clamp_byte(RGB_GAIN * v + RGB_OFFSET) for v in range(256)]


def _flatten(image: Image.Image) -> Image.Image:
    """Opaque RGB copy; any transparency is composited onto white paper."""
    if image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info:
        rgba = image.convert("RGBA")
        paper = Image.new("RGB", rgba.size, (255, 255, 255))
        paper.paste(rgba, mask=rgba.getchannel("A"))
        return paper
    return image.convert("RGB")


def transparentize(source: bytes) -> bytes:
    """
    Remove the light background from a signature image.

    Args:
        source: Raw bytes of a PNG, JPEG, WEBP or other Pillow-readable image

    Returns:
        PNG bytes with an alpha channel, or b"" when ``source`` is empty or
        cannot be decoded. Callers must treat b"" as a failed upload.
    """
    if not source:
        return b""

    try:
        with Image.open(BytesIO(source)) as opened:
            opened.load()
            base = _flatten(opened)
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        logger.info("Signature image could not be decoded", extra={"error_type": type(e).__name__})
        return b""

    alpha = ImageOps.invert(base.convert("L")).point(_ALPHA_LUT)
    alpha = alpha.filter(ImageFilter.MedianFilter(MEDIAN_SIZE))

    darkened = base.point(_RGB_LUT * 3)
    red, green, blue = darkened.split()

    output = BytesIO()
    Image.merge("RGBA", (red, green, blue, alpha)).save(output, format="PNG", optimize=True)
    return output.getvalue()


def fit_width(png: bytes, max_width: int) -> bytes:
    """Shrink a PNG to at most ``max_width`` pixels wide, keeping its aspect ratio; never enlarges."""
    if not png:
        return b""

    try:
        with Image.open(BytesIO(png)) as image:
            image.load()
            if image.width <= max_width:
                return png
            height = max(1, round(image.height * max_width / image.width))
            resized = image.resize((max_width, height), Image.Resampling.LANCZOS)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        logger.info("Signature image could not be resized", extra={"error_type": type(e).__name__})
        return b""

    output = BytesIO()
    resized.save(output, format="PNG", optimize=True)
    return output.getvalue()


def prepare_signature(source: bytes, max_width: int = 1600) -> bytes:
    """Transparent, width-capped PNG ready for compositing, or b"" on failure."""
    return fit_width(transparentize(source), max_width)
