"""
agreement_kernel.services.signature_capture -- Signature normalization.

Responsibility:
    Turns what the signing UI produces (freehand strokes, or an already
    rendered image) into a normalized PNG signature artifact.  Pure
    transform: no state, no I/O beyond in-memory buffers.

Architecture position:
    Kernel > Services.  May import from domain/ and exceptions.  Uses
    Pillow for rasterization and decoding.

Invariants enforced:
    - Strokes are drawn on one fixed canvas size with one stroke width, so
      every captured artifact has comparable scale.
    - Output is always PNG, trimmed to the inked area plus padding, and
      never larger than the canvas.
    - A capture with no ink never produces an artifact.

Failure modes:
    - EmptyInputError if nothing was drawn (no strokes, strokes entirely
      outside the canvas, or a blank uploaded image).
    - InvalidSignatureImageError if uploaded bytes are too large or not a
      decodable image.
"""

from __future__ import annotations

import io
from collections.abc import Sequence
from dataclasses import dataclass

from PIL import Image, ImageDraw, ImageOps, UnidentifiedImageError

from agreement_kernel.domain.signature import CaptureSettings, Stroke
from agreement_kernel.exceptions import EmptyInputError, InvalidSignatureImageError
from agreement_kernel.logging_config import get_logger

logger = get_logger("services.signature_capture")

_INK = (0, 0, 0, 255)
_TRANSPARENT = (0, 0, 0, 0)


@dataclass(frozen=True)
class NormalizedSignature:
    """PNG bytes plus the pixel size they decode to."""

    content: bytes
    width: int
    height: int


class SignatureCapture:
    """Stateless signature normalizer configured by ``CaptureSettings``."""

    def __init__(self, settings: CaptureSettings | None = None):
        self._settings = settings or CaptureSettings()

    @property
    def settings(self) -> CaptureSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Freehand strokes
    # ------------------------------------------------------------------

    def capture_to_artifact(self, strokes: Sequence[Stroke]) -> bytes:
        """Render strokes to a trimmed PNG.

        Single-point strokes are drawn as dots.

        Raises:
            EmptyInputError: If no ink lands on the canvas.
        """
        return self.render_strokes(strokes).content

    def render_strokes(self, strokes: Sequence[Stroke]) -> NormalizedSignature:
        s = self._settings
        points_drawn = 0
        image = Image.new("RGBA", (s.canvas_width, s.canvas_height), _TRANSPARENT)
        draw = ImageDraw.Draw(image)
        radius = max(s.stroke_width / 2.0, 1.0)

        for stroke in strokes or ():
            points = [(float(x), float(y)) for x, y in stroke]
            if not points:
                continue
            points_drawn += len(points)
            if len(points) == 1:
                x, y = points[0]
                draw.ellipse((x - radius, y - radius, x + radius, y + radius), fill=_INK)
            else:
                draw.line(points, fill=_INK, width=s.stroke_width, joint="curve")

        if points_drawn == 0:
            raise EmptyInputError()

        bbox = image.getchannel("A").getbbox()
        if bbox is None:
            raise EmptyInputError("strokes lie outside the signature canvas")
        return self._finish(image, bbox)

    # ------------------------------------------------------------------
    # Uploaded images
    # ------------------------------------------------------------------

    def normalize_upload(self, image_bytes: bytes) -> bytes:
        """Normalize an uploaded signature image to a trimmed PNG.

        Raises:
            EmptyInputError: If the payload is empty or the image is blank.
            InvalidSignatureImageError: If the payload is too large or
                cannot be decoded.
        """
        return self.normalize(image_bytes).content

    def normalize(self, image_bytes: bytes) -> NormalizedSignature:
        s = self._settings
        if not image_bytes:
            raise EmptyInputError("signature image is empty")
        if len(image_bytes) > s.max_upload_bytes:
            raise InvalidSignatureImageError(
                f"{len(image_bytes)} bytes exceeds limit of {s.max_upload_bytes}"
            )

        try:
            with Image.open(io.BytesIO(image_bytes)) as source:
                source.load()
                rgba = source.convert("RGBA")
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            SyntaxError,  # Pillow reports broken PNG chunks this way
            ValueError,
        ) as exc:
            logger.info("signature_upload_rejected", extra={"reason": str(exc)})
            raise InvalidSignatureImageError(str(exc)) from exc

        # Flatten onto white so transparent and opaque uploads are treated alike
        flattened = Image.new("RGBA", rgba.size, (255, 255, 255, 255))
        flattened.alpha_composite(rgba)
        gray = flattened.convert("L")

        cutoff = 255 - s.ink_threshold
        ink_mask = gray.point(lambda value: 255 if value < cutoff else 0)
        bbox = ink_mask.getbbox()
        if bbox is None:
            raise EmptyInputError("uploaded signature image is blank")

        # Background becomes transparent, ink keeps its colour
        result = flattened.copy()
        result.putalpha(ImageOps.invert(gray))
        return self._finish(result, bbox)

    # ------------------------------------------------------------------

    def _finish(self, image: Image.Image, bbox: tuple[int, int, int, int]) -> NormalizedSignature:
        s = self._settings
        left, top, right, bottom = bbox
        cropped = image.crop((
            max(left - s.padding, 0),
            max(top - s.padding, 0),
            min(right + s.padding, image.width),
            min(bottom + s.padding, image.height),
        ))
        if cropped.width > s.canvas_width or cropped.height > s.canvas_height:
            cropped.thumbnail((s.canvas_width, s.canvas_height))

        buffer = io.BytesIO()
        cropped.save(buffer, format="PNG", optimize=True)
        return NormalizedSignature(
            content=buffer.getvalue(),
            width=cropped.width,
            height=cropped.height,
        )
