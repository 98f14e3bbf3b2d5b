"""Tests for image extraction and sharing."""

import io
import zipfile

import pytest

from pptxconvert.parser.archive import PackageArchive
from pptxconvert.parser.diagnostics import Diagnostics
from pptxconvert.parser.media import MediaExtractor, sniff_image_format
from pptxconvert.parser.pptx_reader import PPTXReader

from conftest import image_bytes


def archive_with(parts: dict) -> PackageArchive:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in parts.items():
            zf.writestr(name, data)
    return PackageArchive(buffer.getvalue())


class TestSniffing:
    """Tests for format detection."""

    def test_signatures(self) -> None:
        """PNG, JPEG and GIF are recognized; others are not."""
        assert sniff_image_format(image_bytes(fmt="PNG")) == "PNG"
        assert sniff_image_format(image_bytes(fmt="JPEG")) == "JPEG"
        assert sniff_image_format(image_bytes(fmt="GIF")) == "GIF"
        assert sniff_image_format(image_bytes(fmt="BMP")) is None


class TestMediaExtractor:
    """Tests for MediaExtractor."""

    def test_decodes_once(self, png_bytes: bytes) -> None:
        """Repeated lookups return the same cached object."""
        media = MediaExtractor(archive_with({"ppt/media/image1.png": png_bytes}), Diagnostics())

        first = media.get("ppt/media/image1.png")
        second = media.get("/ppt/media/image1.png")

        assert first is second
        assert (first.format, first.width, first.height) == ("PNG", 40, 20)
        assert first.target == "ppt/media/image1.png"
        assert first.to_bytes() == png_bytes
        assert len(media) == 1

    def test_unsupported_format(self) -> None:
        """Formats outside PNG/JPEG/GIF are omitted with one warning."""
        diagnostics = Diagnostics()
        media = MediaExtractor(archive_with({"ppt/media/image1.bmp": image_bytes(fmt="BMP")}), diagnostics)

        assert media.get("ppt/media/image1.bmp") is None
        assert media.get("ppt/media/image1.bmp") is None
        assert diagnostics.messages == [
            "[UnsupportedFeature] Image ppt/media/image1.bmp is not PNG, JPEG or GIF; omitted"
        ]

    def test_corrupt_image(self) -> None:
        """Truncated image data is a decode failure."""
        diagnostics = Diagnostics()
        truncated = image_bytes(size=(200, 200))[:60]
        media = MediaExtractor(archive_with({"ppt/media/image1.png": truncated}), diagnostics)

        assert media.get("ppt/media/image1.png") is None
        assert len(diagnostics) == 1
        assert diagnostics.messages[0].startswith("[DecodeFailure] Image ppt/media/image1.png could not be decoded")

    def test_missing_part(self) -> None:
        """A dangling media target is a missing part."""
        diagnostics = Diagnostics()
        media = MediaExtractor(archive_with({"x.xml": "<x/>"}), diagnostics)
        assert media.get("ppt/media/nope.png") is None
        assert diagnostics.messages == ["[MissingPart] Image part ppt/media/nope.png is missing from the package"]

    def test_frozen_cache(self, png_bytes: bytes) -> None:
        """After freeze, cached entries remain readable but new ones are refused."""
        media = MediaExtractor(
            archive_with({"ppt/media/a.png": png_bytes, "ppt/media/b.png": png_bytes}), Diagnostics()
        )
        media.get("ppt/media/a.png")
        snapshot = media.freeze()

        assert list(snapshot) == ["ppt/media/a.png"]
        assert media.get("ppt/media/a.png") is snapshot["ppt/media/a.png"]
        with pytest.raises(RuntimeError):
            media.get("ppt/media/b.png")


class TestSharedImages:
    """Tests for images referenced from several slides."""

    def test_shared_image_is_listed_once(self, shared_image_pptx: bytes) -> None:
        """Both slides reference one media entry."""
        presentation = PPTXReader().read(shared_image_pptx)

        assert len(presentation.media_files) == 1
        first, second = (slide.elements[0] for slide in presentation.slides)
        assert first.type == second.type == "image"
        assert first.image_target == second.image_target
        assert first.image_target in presentation.media_files
        assert first.image_data == second.image_data
        assert presentation.warnings == []
