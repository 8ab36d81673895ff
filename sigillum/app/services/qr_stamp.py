"""
QR verification stamping.

This module embeds a QR image encoding a verification URL into the page
content of an existing PDF and returns the new PDF bytes.

Design guarantees:
- The caller's input buffer is never mutated; output is a fresh buffer.
- One QR raster per call, embedded once as a shared image XObject and
  drawn on every selected page.
- Page count and page order are preserved.
- Existing page content is wrapped in a ``q … Q`` pair so the stamp is
  drawn in the default graphics state regardless of what the page left
  on the stack.

Trust boundary:
- This module does NOT hash, store, or record anything. Hashing happens
  strictly downstream, on the bytes returned from here.
"""

from __future__ import annotations

import io
import logging
import math
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pikepdf
import qrcode
from PIL import Image
from pikepdf import Array, Name, Stream
from pydantic import BaseModel, ConfigDict

from sigillum.app.config import QrPosition, QrSize
from sigillum.app.errors import (
    InvalidInputDocument,
    StampingFailed,
    ValidationError,
)

logger = logging.getLogger(__name__)


QR_SIZE_POINTS: Dict[str, int] = {
    "small": 60,
    "medium": 80,
    "large": 100,
}

# Distance from the chosen page edges, in points.
MARGIN = 20

# Raster must stay sharp when scaled down onto the page.
RASTER_SCALE = 3
MIN_RASTER_PX = 200


class StampOptions(BaseModel):
    """Recognized stamp options. Unknown fields are rejected."""

    size: QrSize = "medium"
    position: QrPosition = "bottom-right"

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def size_points(self) -> int:
        return QR_SIZE_POINTS[self.size]


class SafeModePolicy(BaseModel):
    """
    Reduced stamping for very large inputs.

    When enabled and the input exceeds either threshold, only the first
    and last page are stamped.
    """

    enabled: bool = False
    max_bytes: int = 25 * 1024 * 1024
    max_pages: int = 80

    model_config = ConfigDict(frozen=True)


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------

def render_qr_image(url: str, size_points: int) -> Image.Image:
    """
    Render the QR code for ``url`` as an 8-bit grayscale image.

    Modules are scaled by an integer factor so the raster is at least
    ``max(200, 3 * size_points)`` pixels wide with crisp module edges.
    Rendering is deterministic for a given URL and size.
    """
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=1,
        border=1,
    )
    qr.add_data(url)
    qr.make(fit=True)

    matrix = qr.get_matrix()
    modules = len(matrix)

    target_px = max(MIN_RASTER_PX, round(size_points * RASTER_SCALE))
    scale = math.ceil(target_px / modules)

    base = Image.new("L", (modules, modules), color=255)
    base.putdata(
        [0 if dark else 255 for row in matrix for dark in row]
    )
    return base.resize(
        (modules * scale, modules * scale),
        resample=Image.Resampling.NEAREST,
    )


def compute_placement(
    page_width: float,
    page_height: float,
    size: float,
    position: str,
) -> Tuple[float, float]:
    """
    Lower-left corner of the stamp, origin at the page's bottom-left.
    """
    vertical, horizontal = position.split("-", 1)

    if horizontal == "left":
        x = MARGIN
    elif horizontal == "right":
        x = page_width - size - MARGIN
    else:
        x = (page_width - size) / 2

    if vertical == "bottom":
        y = MARGIN
    else:
        y = page_height - size - MARGIN

    return float(x), float(y)


def select_pages(
    page_count: int,
    byte_size: int,
    policy: Optional[SafeModePolicy],
) -> Tuple[List[int], bool]:
    """
    Return the zero-based page indices to stamp and whether safe mode
    was applied.
    """
    every_page = list(range(page_count))
    if policy is None or not policy.enabled:
        return every_page, False

    oversized = (
        byte_size > policy.max_bytes or page_count > policy.max_pages
    )
    if not oversized or page_count <= 2:
        return every_page, False

    return [0, page_count - 1], True


def _open_permissive(pdf_bytes: bytes) -> pikepdf.Pdf:
    if not pdf_bytes:
        raise InvalidInputDocument("Input document is empty.")
    try:
        # Owner-password-only documents open with an empty password.
        return pikepdf.open(io.BytesIO(pdf_bytes))
    except pikepdf.PasswordError as exc:
        raise InvalidInputDocument(
            "Input PDF requires a password to open."
        ) from exc
    except pikepdf.PdfError as exc:
        raise InvalidInputDocument(
            "Input is not a parseable PDF document."
        ) from exc


def _make_image_xobject(pdf: pikepdf.Pdf, image: Image.Image) -> pikepdf.Object:
    xobject = Stream(pdf, image.tobytes())
    xobject.Type = Name.XObject
    xobject.Subtype = Name.Image
    xobject.Width = image.width
    xobject.Height = image.height
    xobject.ColorSpace = Name.DeviceGray
    xobject.BitsPerComponent = 8
    return pdf.make_indirect(xobject)


def _page_box(page: pikepdf.Page) -> Tuple[float, float, float, float]:
    llx, lly, urx, ury = (float(v) for v in page.mediabox)
    return min(llx, urx), min(lly, ury), abs(urx - llx), abs(ury - lly)


def _stamp_page(
    pdf: pikepdf.Pdf,
    page: pikepdf.Page,
    qr_xobject: pikepdf.Object,
    options: StampOptions,
) -> None:
    origin_x, origin_y, width, height = _page_box(page)
    size = options.size_points
    x, y = compute_placement(width, height, size, options.position)
    x += origin_x
    y += origin_y

    if Name.Resources not in page.obj:
        page.obj.Resources = pikepdf.Dictionary()
    resource_name = page.add_resource(
        qr_xobject,
        Name.XObject,
        prefix="SigQr",
    )

    draw = (
        f"\nQ\nq {size} 0 0 {size} {x:.4f} {y:.4f} cm "
        f"{resource_name} Do Q\n"
    ).encode("ascii")

    existing = page.obj.get(Name.Contents)
    parts: List[pikepdf.Object] = [pdf.make_indirect(Stream(pdf, b"q\n"))]
    if isinstance(existing, pikepdf.Array):
        parts.extend(existing)
    elif existing is not None:
        parts.append(existing)
    parts.append(pdf.make_indirect(Stream(pdf, draw)))

    page.obj.Contents = Array(parts)


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------

def stamp_pdf(
    pdf_bytes: bytes,
    verification_url: str,
    options: Optional[StampOptions] = None,
    *,
    safe_mode: Optional[SafeModePolicy] = None,
    on_safe_mode: Optional[Callable[[Dict[str, int]], None]] = None,
) -> bytes:
    """
    Stamp a verification QR code onto a PDF.

    Args:
        pdf_bytes:
            Raw input PDF. Never modified.
        verification_url:
            URL encoded into the QR image.
        options:
            Size and position; defaults to medium / bottom-right.
        safe_mode:
            Optional reduced page-selection policy for large inputs.
        on_safe_mode:
            Called with page/byte counts when safe mode was applied.

    Returns:
        New PDF bytes with the QR drawn on each selected page.

    Raises:
        InvalidInputDocument:
            If the input cannot be parsed as a PDF.
        StampingFailed:
            If embedding or serialization fails.
    """
    if not verification_url or not verification_url.strip():
        raise ValidationError("verification_url must not be empty.")

    options = options or StampOptions()
    data = bytes(pdf_bytes)

    pdf = _open_permissive(data)
    try:
        pages: Sequence[pikepdf.Page] = pdf.pages
        page_count = len(pages)
        if page_count == 0:
            raise InvalidInputDocument("Input PDF has no pages.")

        selected, reduced = select_pages(page_count, len(data), safe_mode)
        if reduced:
            details = {
                "page_count": page_count,
                "byte_size": len(data),
                "stamped_pages": len(selected),
            }
            logger.warning("qr_stamp_safe_mode_applied", extra=details)
            if on_safe_mode is not None:
                on_safe_mode(details)

        try:
            qr_image = render_qr_image(verification_url, options.size_points)
            qr_xobject = _make_image_xobject(pdf, qr_image)

            for index in selected:
                _stamp_page(pdf, pages[index], qr_xobject, options)

            output = io.BytesIO()
            pdf.save(output, encryption=False, deterministic_id=True)
        except Exception as exc:
            logger.exception(
                "qr_stamp_failed",
                extra={"page_count": page_count, "error": type(exc).__name__},
            )
            raise StampingFailed(
                "Failed to embed verification QR code."
            ) from exc
    finally:
        pdf.close()

    return output.getvalue()
