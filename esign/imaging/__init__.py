"""Signature image processing and PDF compositing"""

from esign.imaging.pdf_compositor import Placement, PlacementRequest, compute_placement, stamp
from esign.imaging.signature_filter import fit_width, prepare_signature, transparentize

__all__ = [
    "Placement",
    "PlacementRequest",
    "compute_placement",
    "fit_width",
    "prepare_signature",
    "stamp",
    "transparentize",
]
