"""Tests for package access, relationships and the warning log."""

import io
import zipfile

import pytest

from pptxconvert.errors import CorruptArchive, MissingPart, UnsupportedFeature, XmlParseError
from pptxconvert.parser.archive import OLE_SIGNATURE, PackageArchive
from pptxconvert.parser.diagnostics import Diagnostics
from pptxconvert.parser.relationships import RelationshipResolver, rels_path_for, resolve_target


def make_zip(parts: dict) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in parts.items():
            zf.writestr(name, data)
    return buffer.getvalue()


class TestPackageArchive:
    """Tests for PackageArchive."""

    def test_rejects_empty_input(self) -> None:
        """Empty bytes are not a package."""
        with pytest.raises(CorruptArchive, match="Empty input"):
            PackageArchive(b"")

    def test_rejects_legacy_ppt(self) -> None:
        """OLE compound files get a specific message."""
        with pytest.raises(CorruptArchive, match=r"\.ppt"):
            PackageArchive(OLE_SIGNATURE + b"\x00" * 64)

    def test_rejects_non_zip(self) -> None:
        """Arbitrary bytes fail with the zip error as cause."""
        with pytest.raises(CorruptArchive) as excinfo:
            PackageArchive(b"this is not a zip archive")
        assert excinfo.value.cause is not None

    def test_missing_file_path(self, tmp_path) -> None:
        """Unreadable paths raise CorruptArchive."""
        with pytest.raises(CorruptArchive):
            PackageArchive(tmp_path / "missing.pptx")

    def test_parts_and_xml(self, tmp_path) -> None:
        """Parts are readable by name, with or without a leading slash."""
        path = tmp_path / "deck.pptx"
        path.write_bytes(make_zip({"ppt/a.xml": "<root><child/></root>", "ppt/b.bin": b"\x00\x01"}))

        with PackageArchive(path) as archive:
            assert archive.part_names == ["ppt/a.xml", "ppt/b.bin"]
            assert archive.has_part("/ppt/a.xml")
            assert archive.get_part("ppt/b.bin") == b"\x00\x01"
            assert archive.get_part("ppt/missing.xml") is None
            assert archive.get_xml("ppt/a.xml").tag == "root"

    def test_malformed_xml(self) -> None:
        """Malformed XML raises a recoverable XmlParseError."""
        archive = PackageArchive(make_zip({"ppt/bad.xml": "<root><unclosed></root>"}))
        with pytest.raises(XmlParseError):
            archive.get_xml("ppt/bad.xml")


class TestRelationships:
    """Tests for relationship resolution."""

    def test_rels_path(self) -> None:
        """Relationship parts live in a sibling _rels folder."""
        assert rels_path_for("ppt/slides/slide1.xml") == "ppt/slides/_rels/slide1.xml.rels"
        assert rels_path_for("ppt/presentation.xml") == "ppt/_rels/presentation.xml.rels"

    def test_resolve_target(self) -> None:
        """Relative targets resolve against the source directory."""
        assert resolve_target("ppt/slides/slide1.xml", "../media/image1.png") == "ppt/media/image1.png"
        assert resolve_target("ppt/slides/slide1.xml", "/ppt/media/image2.png") == "ppt/media/image2.png"

    def test_resolver_reads_and_caches(self) -> None:
        """Relationships resolve to package part names; external ones do not."""
        rels = (
            '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">'
            '<Relationship Id="rId1" Type="t/image" Target="../media/image1.png"/>'
            '<Relationship Id="rId2" Type="t/hyperlink" Target="https://example.com" TargetMode="External"/>'
            "</Relationships>"
        )
        archive = PackageArchive(make_zip({"ppt/slides/_rels/slide1.xml.rels": rels}))
        resolver = RelationshipResolver(archive, Diagnostics())

        assert resolver.resolve("ppt/slides/slide1.xml", "rId1") == "ppt/media/image1.png"
        assert resolver.resolve("ppt/slides/slide1.xml", "rId2") is None
        assert resolver.first_of_type("ppt/slides/slide1.xml", "t/image") == "ppt/media/image1.png"
        assert resolver.relationships_for("ppt/slides/slide1.xml") is resolver.relationships_for(
            "ppt/slides/slide1.xml"
        )

    def test_missing_rels_warns_once(self) -> None:
        """A missing relationships part is a single warning, not an error."""
        diagnostics = Diagnostics()
        resolver = RelationshipResolver(PackageArchive(make_zip({"x.xml": "<x/>"})), diagnostics)

        assert resolver.resolve("ppt/slides/slide1.xml", "rId1") is None
        assert resolver.resolve("ppt/slides/slide1.xml", "rId2") is None
        assert diagnostics.messages == [
            "[MissingPart] No relationships file for ppt/slides/slide1.xml; references from it cannot be resolved"
        ]

    def test_explicit_log_receives_warnings(self) -> None:
        """A caller-supplied empty log is used instead of the resolver's own."""
        own, slide_log = Diagnostics(), Diagnostics()
        resolver = RelationshipResolver(PackageArchive(make_zip({"x.xml": "<x/>"})), own)

        resolver.relationships_for("ppt/slides/slide2.xml", slide_log)

        assert own.messages == []
        assert len(slide_log) == 1


class TestDiagnostics:
    """Tests for the warning log."""

    def test_deduplicates(self) -> None:
        """Identical warnings are kept once, in first-seen order."""
        diagnostics = Diagnostics()
        assert diagnostics.record(MissingPart, "a")
        assert not diagnostics.record(MissingPart, "a")
        diagnostics.record("UnsupportedFeature", "b")
        assert diagnostics.messages == ["[MissingPart] a", "[UnsupportedFeature] b"]
        assert len(diagnostics) == 2

    def test_capture_records_recoverable_errors(self) -> None:
        """Recoverable errors inside capture() become warnings."""
        diagnostics = Diagnostics()
        with diagnostics.capture("Background ignored"):
            raise UnsupportedFeature("pattern fill")
        assert diagnostics.messages == ["[UnsupportedFeature] Background ignored: pattern fill"]

    def test_capture_propagates_other_errors(self) -> None:
        """Non-recoverable errors are not swallowed."""
        diagnostics = Diagnostics()
        with pytest.raises(CorruptArchive):
            with diagnostics.capture():
                raise CorruptArchive("broken")

    def test_extend_preserves_order(self) -> None:
        """Merging logs appends new entries only."""
        first, second = Diagnostics(), Diagnostics()
        first.record(MissingPart, "a")
        second.record(MissingPart, "a")
        second.record(MissingPart, "b")
        first.extend(second)
        assert first.messages == ["[MissingPart] a", "[MissingPart] b"]

    def test_empty_log_is_truthy(self) -> None:
        """An empty log still counts as a log."""
        diagnostics = Diagnostics()
        assert len(diagnostics) == 0
        assert diagnostics
