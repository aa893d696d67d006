"""
Signature compositing onto PDF pages.

Placement arrives from the browser as fractions of the page measured from
its top-left corner; PDF user space has its origin at the bottom-left. The
signature is drawn on a one-page reportlab overlay the size of the target
page and merged onto it with pypdf.
"""

import logging
import math
from dataclasses import dataclass
from io import BytesIO
from typing import Tuple

from PIL import Image, UnidentifiedImageError
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from esign.core.errors import BadSignature, InvalidPlacement, MalformedDocument

logger = logging.getLogger(__name__)

MIN_SIGNATURE_WIDTH = 8.0

CLAMP = "clamp"
REJECT = "reject"

# What pypdf raises for broken page trees, on load and on clone or merge
_PDF_ERRORS = (PyPdfError, ValueError, KeyError, OSError, TypeError, AttributeError)


@dataclass(frozen=True)
class PlacementRequest:
    """Where the browser asked for the signature.

    page is 1-based; x_pct and y_pct are fractions of the page size from the
    top-left corner; width_pct is the fraction of the page width the
    signature should span.
    """

    page: int
    x_pct: float
    y_pct: float
    width_pct: float


@dataclass(frozen=True)
class Placement:
    """Resolved geometry in PDF units; ``y`` is measured from the page bottom."""

    page_index: int
    x: float
    y: float
    width: float
    height: float
    y_top: float


def js_round(value: float) -> int:
    """Round half up, so 0.5 goes to 1 and -0.5 to 0."""
    return math.floor(value + 0.5)


def resolve_page_index(page: int, page_count: int, policy: str = CLAMP) -> int:
    """0-based index of the target page; out-of-range pages clamp or raise per ``policy``."""
    if page_count < 1:
        raise MalformedDocument("Document has no pages")
    if policy == REJECT and not 1 <= page <= page_count:
        raise InvalidPlacement(f"Page {page} is outside 1..{page_count}")
    return min(max(page, 1), page_count) - 1


def compute_placement(
    page_width: float,
    page_height: float,
    image_size: Tuple[int, int],
    request: PlacementRequest,
    page_index: int = 0,
    min_width: float = MIN_SIGNATURE_WIDTH,
    policy: str = CLAMP,
) -> Placement:
    """
    Map a relative placement to absolute page coordinates.

    Width is ``page_width * width_pct`` held to [min_width, page_width];
    height follows the image's aspect ratio and is capped at the page
    height. The top-left corner is clamped so the whole box stays on the
    page (or InvalidPlacement is raised under the reject policy), then
    converted to a bottom-left origin.
    """
    image_width, image_height = image_size
    if image_width <= 0 or image_height <= 0:
        raise BadSignature("Signature image has no pixels")

    # The floor never pushes the box past a page narrower than min_width
    target_w = min(page_width, max(min_width, page_width * request.width_pct))
    target_h = target_w * (image_height / image_width)
    if target_h > page_height:
        # Very tall signatures are scaled to fit the page height instead
        target_h = page_height
        target_w = target_h * (image_width / image_height)

    requested_x = js_round(page_width * request.x_pct)
    requested_y = js_round(page_height * request.y_pct)
    max_x = page_width - target_w
    max_y = page_height - target_h

    if policy == REJECT and (requested_x > max_x or requested_y > max_y):
        raise InvalidPlacement("Signature would extend past the page edge")

    x = max(0.0, min(max_x, float(requested_x)))
    y_top = max(0.0, min(max_y, float(requested_y)))
    y = page_height - y_top - target_h

    return Placement(page_index=page_index, x=x, y=y, width=target_w, height=target_h, y_top=y_top)


def _image_size(image_bytes: bytes) -> Tuple[int, int]:
    try:
        with Image.open(BytesIO(image_bytes)) as image:
            return image.size
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise BadSignature("Signature image could not be read") from e


def _overlay(page_width: float, page_height: float, image_bytes: bytes, placement: Placement) -> PdfReader:
    buffer = BytesIO()
    overlay = canvas.Canvas(buffer, pagesize=(page_width, page_height))
    overlay.drawImage(
        ImageReader(BytesIO(image_bytes)),
        placement.x,
        placement.y,
        width=placement.width,
        height=placement.height,
        mask="auto",
    )
    overlay.showPage()
    overlay.save()
    buffer.seek(0)
    return PdfReader(buffer)


def _load(pdf_bytes: bytes) -> Tuple[PdfReader, int]:
    if not pdf_bytes:
        raise MalformedDocument("Document is empty")
    try:
        reader = PdfReader(BytesIO(pdf_bytes))
        if reader.is_encrypted:
            reader.decrypt("")
        page_count = len(reader.pages)
    except _PDF_ERRORS as e:
        raise MalformedDocument() from e
    if page_count < 1:
        raise MalformedDocument("Document has no pages")
    return reader, page_count


def stamp(
    pdf_bytes: bytes,
    image_bytes: bytes,
    request: PlacementRequest,
    min_width: float = MIN_SIGNATURE_WIDTH,
    policy: str = CLAMP,
) -> bytes:
    """
    Draw a PNG signature onto one page of a PDF.

    Args:
        pdf_bytes: The template document
        image_bytes: PNG (alpha honoured) to place
        request: Target page and relative geometry
        min_width: Smallest rendered width in PDF units
        policy: "clamp" pulls out-of-range pages and boxes back onto the
            document; "reject" raises InvalidPlacement instead

    Returns:
        A new PDF; ``pdf_bytes`` is left untouched

    Raises:
        MalformedDocument: If ``pdf_bytes`` is not a readable PDF
        BadSignature: If ``image_bytes`` is not a readable image
        InvalidPlacement: Under the reject policy, for out-of-range placement
    """
    reader, page_count = _load(pdf_bytes)
    page_index = resolve_page_index(request.page, page_count, policy)
    image_size = _image_size(image_bytes)

    try:
        writer = PdfWriter(clone_from=reader)
        page = writer.pages[page_index]
        box = page.mediabox
        page_width, page_height = float(box.width), float(box.height)
        placement = compute_placement(
            page_width,
            page_height,
            image_size,
            request,
            page_index=page_index,
            min_width=min_width,
            policy=policy,
        )
        overlay_page = _overlay(page_width, page_height, image_bytes, placement).pages[0]
        # Media boxes need not start at the origin
        page.merge_translated_page(overlay_page, float(box.left), float(box.bottom))

        output = BytesIO()
        writer.write(output)
    except _PDF_ERRORS as e:
        raise MalformedDocument() from e

    logger.debug(
        "Signature stamped",
        extra={
            "page": page_index + 1,
            "x": placement.x,
            "y": placement.y,
            "width": placement.width,
            "height": placement.height,
        },
    )
    return output.getvalue()


def page_count(pdf_bytes: bytes) -> int:
    """Number of pages in a PDF; raises MalformedDocument for anything unreadable."""
    _, count = _load(pdf_bytes)
    return count
