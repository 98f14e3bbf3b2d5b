"""
Exception hierarchy for the conversion pipeline.

Only CorruptArchive aborts a conversion. The other parse-time errors are
recoverable: they are raised close to the anomaly and turned into entries of
the presentation's warning log at the shape, slide or media boundary.
"""

from typing import Any, Dict, Optional


class ConversionError(Exception):
    """Base exception for all conversion errors"""

    def __init__(
        self,
        message: str,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.cause = cause
        self.context = context or {}

    def __str__(self):
        parts = [super().__str__()]
        if self.cause:
            parts.append(f" (caused by: {type(self.cause).__name__}: {str(self.cause)})")
        if self.context:
            parts.append(f" Context: {self.context}")
        return "".join(parts)


# === Fatal ===

class CorruptArchive(ConversionError):
    """The package cannot be opened as a zip archive, or holds no slides"""
    pass


# === Recoverable (absorbed into warnings) ===

class RecoverableError(ConversionError):
    """Anomaly that degrades output but never stops the pipeline"""
    pass


class MissingPart(RecoverableError):
    """A referenced part or relationships file is absent"""
    pass


class UnsupportedFeature(RecoverableError):
    """A recognized construct that can only be approximated"""
    pass


class DecodeFailure(RecoverableError):
    """Bytes of a part could not be decoded (image or XML)"""
    pass


class XmlParseError(DecodeFailure):
    """A part is present but is not well-formed XML"""
    pass


# === Renderer ===

class RenderError(ConversionError):
    """The renderer cannot produce a document from its input"""
    pass
