"""
Tests for SignatureCapture: stroke rendering and upload normalization.
"""

import io

import pytest
from PIL import Image, ImageDraw

from agreement_kernel.domain.signature import CaptureSettings
from agreement_kernel.exceptions import EmptyInputError, InvalidSignatureImageError
from agreement_kernel.services.signature_capture import SignatureCapture


def _open(png: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(png))
    image.load()
    return image


def _encode(image: Image.Image, fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def _scan(size=(400, 150), background="white", mode="RGB") -> Image.Image:
    """A scanned signature: dark scribble on an opaque background."""
    image = Image.new(mode, size, background)
    draw = ImageDraw.Draw(image)
    draw.line([(50, 100), (120, 40), (200, 110), (320, 60)], fill="black", width=4)
    return image


class TestStrokeRendering:
    def test_renders_png_within_canvas(self, capture):
        strokes = [[(40, 120), (80, 60), (120, 140)], [(300, 90), (360, 95)]]
        png = capture.capture_to_artifact(strokes)

        image = _open(png)
        assert image.format == "PNG"
        assert image.mode == "RGBA"
        assert image.width <= capture.settings.canvas_width
        assert image.height <= capture.settings.canvas_height

    def test_trims_to_ink_plus_padding(self):
        settings = CaptureSettings(stroke_width=2, padding=4)
        capture = SignatureCapture(settings)
        result = capture.render_strokes([[(100, 50), (200, 50)]])

        # 100 px of line, 2 px pen, 4 px padding on each side
        assert 100 <= result.width <= 100 + 2 * 4 + 4
        assert result.height <= 2 + 2 * 4 + 2
        assert _open(result.content).size == (result.width, result.height)

    def test_background_is_transparent(self, capture):
        image = _open(capture.capture_to_artifact([[(10, 10), (100, 100)]]))
        assert image.getpixel((image.width - 1, 0))[3] == 0

    def test_single_point_is_a_dot(self, capture):
        result = capture.render_strokes([[(50, 50)]])
        assert result.width >= 1 and result.height >= 1
        assert _open(result.content).getchannel("A").getbbox() is not None

    def test_same_strokes_same_bytes(self, capture):
        strokes = [[(40, 120), (80, 60), (120, 140)]]
        assert capture.capture_to_artifact(strokes) == capture.capture_to_artifact(strokes)

    @pytest.mark.parametrize("strokes", [[], [[]], [[], []], None])
    def test_nothing_drawn_is_empty_input(self, capture, strokes):
        with pytest.raises(EmptyInputError) as exc_info:
            capture.capture_to_artifact(strokes)
        assert exc_info.value.code == "EMPTY_INPUT"

    def test_strokes_outside_canvas_are_empty_input(self, capture):
        with pytest.raises(EmptyInputError, match="outside"):
            capture.capture_to_artifact([[(1000, 1000), (1200, 1100)]])

    def test_partially_outside_stroke_is_clipped(self, capture):
        result = capture.render_strokes([[(500, 100), (900, 100)]])
        assert result.width <= capture.settings.canvas_width


class TestUploadNormalization:
    def test_opaque_scan_becomes_transparent_png(self, capture):
        result = capture.normalize(_encode(_scan(), "JPEG"))
        image = _open(result.content)

        assert image.format == "PNG"
        assert image.mode == "RGBA"
        # corners are background: fully (or nearly) transparent
        assert image.getpixel((0, 0))[3] < 20
        assert image.getchannel("A").getextrema()[1] > 200

    def test_trimmed_to_ink(self, capture):
        result = capture.normalize(_encode(_scan(size=(580, 190))))
        assert result.width < 580
        assert result.height < 190

    def test_oversized_image_scaled_to_canvas(self, capture):
        image = Image.new("RGB", (2400, 800), "white")
        ImageDraw.Draw(image).line([(10, 10), (2390, 790)], fill="black", width=12)
        result = capture.normalize(_encode(image))

        assert result.width <= capture.settings.canvas_width
        assert result.height <= capture.settings.canvas_height

    def test_captured_png_is_accepted(self, capture, signature_png):
        result = capture.normalize(signature_png)
        assert _open(result.content).getchannel("A").getbbox() is not None

    def test_transparent_upload_is_accepted(self, capture):
        image = Image.new("RGBA", (300, 100), (0, 0, 0, 0))
        ImageDraw.Draw(image).line([(20, 50), (280, 50)], fill=(0, 0, 160, 255), width=3)
        result = capture.normalize(_encode(image))
        assert result.height < 100

    def test_empty_bytes(self, capture):
        with pytest.raises(EmptyInputError, match="empty"):
            capture.normalize_upload(b"")

    @pytest.mark.parametrize("background", ["white", (250, 250, 250)])
    def test_blank_image(self, capture, background):
        blank = _encode(Image.new("RGB", (300, 100), background))
        with pytest.raises(EmptyInputError, match="blank"):
            capture.normalize_upload(blank)

    def test_fully_transparent_image_is_blank(self, capture):
        blank = _encode(Image.new("RGBA", (300, 100), (0, 0, 0, 0)))
        with pytest.raises(EmptyInputError):
            capture.normalize_upload(blank)

    def test_not_an_image(self, capture):
        with pytest.raises(InvalidSignatureImageError) as exc_info:
            capture.normalize_upload(b"%PDF-1.4 definitely not a picture")
        assert exc_info.value.code == "INVALID_SIGNATURE_IMAGE"

    def test_truncated_png(self, capture, signature_png):
        with pytest.raises(InvalidSignatureImageError):
            capture.normalize_upload(signature_png[: len(signature_png) // 2])

    def test_upload_limit(self):
        capture = SignatureCapture(CaptureSettings(max_upload_bytes=100))
        with pytest.raises(InvalidSignatureImageError, match="exceeds"):
            capture.normalize_upload(_encode(_scan()))
