"""
Unit tests for signature placement and PDF compositing
"""

from io import BytesIO

import pytest
from pypdf import PdfReader, PdfWriter
from pypdf.generic import RectangleObject

from esign.core.errors import BadSignature, InvalidPlacement, MalformedDocument
from esign.imaging import pdf_compositor
from esign.imaging.pdf_compositor import (
    PlacementRequest,
    compute_placement,
    js_round,
    page_count,
    resolve_page_index,
    stamp,
)
from esign.imaging.signature_filter import transparentize
from tests.utils.factories import PdfFactory, SignatureFactory

pytestmark = pytest.mark.unit


def _request(page=1, x_pct=0.7, y_pct=0.9, width_pct=0.25):
    return PlacementRequest(page=page, x_pct=x_pct, y_pct=y_pct, width_pct=width_pct)


def _cm_matrices(page):
    """Every transformation matrix set on the page, rounded for comparison"""
    return [
        tuple(round(float(value), 3) for value in operands)
        for operands, operator in page.get_contents().operations
        if operator == b"cm"
    ]


def _shift_media_box(pdf_bytes, dx, dy):
    writer = PdfWriter(clone_from=PdfReader(BytesIO(pdf_bytes)))
    for page in writer.pages:
        width, height = float(page.mediabox.width), float(page.mediabox.height)
        page.mediabox = RectangleObject([dx, dy, dx + width, dy + height])
    output = BytesIO()
    writer.write(output)
    return output.getvalue()


class TestJsRound:
    @pytest.mark.parametrize(
        "value,expected", [(0.5, 1), (1.5, 2), (2.5, 3), (-0.5, 0), (428.4, 428), (712.8, 713)]
    )
    def test_half_rounds_up(self, value, expected):
        assert js_round(value) == expected


class TestComputePlacement:
    def test_letter_page_example(self):
        placement = compute_placement(612, 792, (100, 40), _request())

        assert placement.width == pytest.approx(153)
        assert placement.height == pytest.approx(61.2)
        assert placement.x == 428
        assert placement.y_top == 713
        assert placement.y == pytest.approx(17.8)

    def test_box_is_clamped_inside_the_page(self):
        placement = compute_placement(612, 792, (100, 40), _request(x_pct=1.0, y_pct=1.0, width_pct=0.5))

        assert placement.width == pytest.approx(306)
        assert placement.x == pytest.approx(612 - 306)
        assert placement.y == pytest.approx(0)

    def test_width_floor(self):
        placement = compute_placement(612, 792, (100, 40), _request(width_pct=0.001), min_width=8.0)

        assert placement.width == pytest.approx(8.0)
        assert placement.height == pytest.approx(3.2)

    def test_width_floor_never_exceeds_a_narrow_page(self):
        placement = compute_placement(5, 792, (100, 40), _request(x_pct=0.5, y_pct=0.5, width_pct=0.01))

        assert placement.width == pytest.approx(5)
        assert placement.height == pytest.approx(2)
        assert placement.x == 0
        assert 0 <= placement.y <= 792 - placement.height

    def test_full_width(self):
        placement = compute_placement(612, 792, (100, 40), _request(x_pct=0.5, width_pct=1.0))

        assert placement.width == pytest.approx(612)
        assert placement.x == 0

    def test_tall_image_is_capped_at_page_height(self):
        placement = compute_placement(612, 792, (10, 1000), _request(x_pct=0, y_pct=0, width_pct=1.0))

        assert placement.height == pytest.approx(792)
        assert placement.width == pytest.approx(7.92)
        assert placement.y == pytest.approx(0)

    @pytest.mark.parametrize("x_pct,y_pct,width_pct", [(0, 0, 0.01), (0.99, 0.99, 1.0), (0.3, 0.5, 0.2)])
    def test_box_always_fits(self, x_pct, y_pct, width_pct):
        placement = compute_placement(612, 792, (300, 90), _request(x_pct=x_pct, y_pct=y_pct, width_pct=width_pct))

        assert 0 <= placement.x <= 612 - placement.width + 1e-9
        assert 0 <= placement.y <= 792 - placement.height + 1e-9

    def test_reject_policy_refuses_overflow(self):
        with pytest.raises(InvalidPlacement):
            compute_placement(612, 792, (100, 40), _request(x_pct=0.95), policy="reject")

    def test_reject_policy_accepts_fitting_box(self):
        placement = compute_placement(612, 792, (100, 40), _request(x_pct=0.1, y_pct=0.1), policy="reject")
        assert placement.x == 61

    def test_empty_image(self):
        with pytest.raises(BadSignature):
            compute_placement(612, 792, (0, 40), _request())


class TestResolvePageIndex:
    def test_out_of_range_pages_clamp(self):
        assert resolve_page_index(5, 3) == 2
        assert resolve_page_index(0, 3) == 0
        assert resolve_page_index(2, 3) == 1

    def test_reject_policy(self):
        with pytest.raises(InvalidPlacement):
            resolve_page_index(4, 3, policy="reject")


class TestStamp:
    @pytest.fixture
    def signature(self):
        return transparentize(SignatureFactory.create())

    def test_stamped_page_gains_an_image(self, signature):
        template = PdfFactory.create(pages=2)
        result = stamp(template, signature, _request(page=2))

        reader = PdfReader(BytesIO(result))
        assert len(reader.pages) == 2
        assert len(reader.pages[1].images) == 1

    def test_signature_is_drawn_at_the_computed_position(self, signature):
        result = stamp(PdfFactory.create(), signature, _request())

        matrices = _cm_matrices(PdfReader(BytesIO(result)).pages[0])
        assert (153.0, 0.0, 0.0, 61.2, 428.0, 17.8) in matrices

    def test_offset_media_box_moves_the_overlay_with_it(self, signature):
        template = _shift_media_box(PdfFactory.create(), 100, 200)
        result = stamp(template, signature, _request())

        matrices = _cm_matrices(PdfReader(BytesIO(result)).pages[0])
        assert (1.0, 0.0, 0.0, 1.0, 100.0, 200.0) in matrices
        assert (153.0, 0.0, 0.0, 61.2, 428.0, 17.8) in matrices

    def test_template_bytes_are_not_modified(self, signature):
        template = PdfFactory.create()
        original = bytes(template)
        stamp(template, signature, _request())
        assert template == original

    def test_page_beyond_the_end_stamps_the_last_page(self, signature):
        result = stamp(PdfFactory.create(pages=3), signature, _request(page=9))

        reader = PdfReader(BytesIO(result))
        assert len(reader.pages[2].images) == 1

    def test_reject_policy_page_out_of_range(self, signature):
        with pytest.raises(InvalidPlacement):
            stamp(PdfFactory.create(pages=1), signature, _request(page=2), policy="reject")

    @pytest.mark.parametrize("pdf_bytes", [b"", b"%PDF-1.4 garbage", b"hello"])
    def test_malformed_document(self, signature, pdf_bytes):
        with pytest.raises(MalformedDocument):
            stamp(pdf_bytes, signature, _request())

    @pytest.mark.parametrize("error", [ValueError, OSError, AttributeError, KeyError])
    def test_broken_page_tree_during_merge(self, signature, monkeypatch, error):
        def broken_writer(*args, **kwargs):
            raise error("page tree")

        monkeypatch.setattr(pdf_compositor, "PdfWriter", broken_writer)

        with pytest.raises(MalformedDocument):
            stamp(PdfFactory.create(), signature, _request())

    def test_unreadable_signature(self):
        with pytest.raises(BadSignature):
            stamp(PdfFactory.create(), b"not a png", _request())

    def test_page_count(self):
        assert page_count(PdfFactory.create(pages=4)) == 4
