"""Break paragraphs into positioned lines.

Shared by the vector and raster renderers: each supplies a measurer for its
own fonts, and this module does word wrapping, bullets and numbering,
alignment and line stacking. Distances are page millimeters relative to the
top-left corner of the text area.
"""

import re
from dataclasses import dataclass, field
from typing import Optional, Protocol

from pptxconvert.dsl.schema import TextParagraph, TextRun
from pptxconvert.engine.units import LINE_HEIGHT_FACTOR, PARAGRAPH_SPACING_FACTOR
from pptxconvert.renderer.geometry import points_to_mm

# Words keep their trailing whitespace so spacing survives wrapping
TOKEN_PATTERN = re.compile(r"\S+\s*|\s+")

# Baseline position within a line, as a fraction of the font size
ASCENT_FACTOR = 0.8

ROMAN_NUMERALS = (
    (1000, "m"),
    (900, "cm"),
    (500, "d"),
    (400, "cd"),
    (100, "c"),
    (90, "xc"),
    (50, "l"),
    (40, "xl"),
    (10, "x"),
    (9, "ix"),
    (5, "v"),
    (4, "iv"),
    (1, "i"),
)


class TextMeasurer(Protocol):
    """Width of text as drawn by a particular backend."""

    def text_width(self, text: str, run: TextRun, size_pt: float) -> float:
        """Width in millimeters of ``text`` in the run's font at ``size_pt``."""


@dataclass(frozen=True)
class Fragment:
    """A piece of one run placed on a line."""

    text: str
    run: TextRun
    x: float
    width: float
    size: float


@dataclass(frozen=True)
class Line:
    """A laid-out line: fragments plus vertical metrics."""

    fragments: tuple
    top: float
    height: float
    baseline: float


@dataclass(frozen=True)
class TextBlock:
    """All lines of a text body and their total height."""

    lines: tuple = ()
    height: float = 0.0


def to_roman(number: int) -> str:
    result = []
    for value, numeral in ROMAN_NUMERALS:
        while number >= value:
            result.append(numeral)
            number -= value
    return "".join(result)


def to_alpha(number: int) -> str:
    """1 → a, 26 → z, 27 → aa."""
    letters = ""
    while number > 0:
        number, remainder = divmod(number - 1, 26)
        letters = chr(ord("a") + remainder) + letters
    return letters


def format_number(number: int, scheme: Optional[str]) -> str:
    """Render an auto-number label for an <a:buAutoNum> scheme.

    Examples:
        format_number(3, "arabicPeriod") -> "3."
        format_number(2, "alphaUcParenR") -> "B)"
        format_number(4, "romanLcPeriod") -> "iv."
    """
    scheme = scheme or "arabicPeriod"
    if scheme.startswith("alphaLc"):
        label = to_alpha(number)
    elif scheme.startswith("alphaUc"):
        label = to_alpha(number).upper()
    elif scheme.startswith("romanLc"):
        label = to_roman(number)
    elif scheme.startswith("romanUc"):
        label = to_roman(number).upper()
    else:
        label = str(number)

    if scheme.endswith("ParenBoth"):
        return f"({label})"
    if scheme.endswith("ParenR"):
        return f"{label})"
    if scheme.endswith("Plain"):
        return label
    return f"{label}."


@dataclass
class _NumberingState:
    """Running auto-number counters per outline level."""

    counters: dict = field(default_factory=dict)

    def label(self, paragraph: TextParagraph) -> Optional[str]:
        level = paragraph.bullet_level
        for deeper in [lvl for lvl in self.counters if lvl > level]:
            del self.counters[deeper]

        if paragraph.is_numbered:
            number = self.counters.get(level, paragraph.numbering_start - 1) + 1
            self.counters[level] = number
            return format_number(number, paragraph.numbering_scheme)

        self.counters.pop(level, None)
        return paragraph.bullet_char


class TextLayout:
    """Lays out paragraphs inside a fixed-width text area."""

    def __init__(self, measurer: TextMeasurer, scale: float, indent_per_level: float) -> None:
        """
        Args:
            measurer: Backend text measurer.
            scale: Slide-to-page scale applied to font sizes.
            indent_per_level: Bullet indent per outline level, in mm.
        """
        self.measurer = measurer
        self.scale = scale
        self.indent_per_level = indent_per_level

    def layout(self, paragraphs: list[TextParagraph], width: float) -> TextBlock:
        """Wrap and stack paragraphs within ``width`` millimeters."""
        numbering = _NumberingState()
        lines: list[Line] = []
        y = 0.0

        for index, paragraph in enumerate(paragraphs):
            if not paragraph.runs:
                continue
            label = numbering.label(paragraph)
            paragraph_lines = self._layout_paragraph(paragraph, label, width, y)
            lines.extend(paragraph_lines)
            if paragraph_lines:
                y = paragraph_lines[-1].top + paragraph_lines[-1].height
            if index < len(paragraphs) - 1:
                largest = max(run.font_size for run in paragraph.runs) * self.scale
                y += points_to_mm(largest) * PARAGRAPH_SPACING_FACTOR

        return TextBlock(lines=tuple(lines), height=y)

    def _layout_paragraph(
        self,
        paragraph: TextParagraph,
        label: Optional[str],
        width: float,
        top: float,
    ) -> list[Line]:
        indent = paragraph.bullet_level * self.indent_per_level if label else 0.0
        first_run = paragraph.runs[0]
        first_size = first_run.font_size * self.scale

        rows: list[list[Fragment]] = [[]]
        text_start = indent
        if label:
            label_text = f"{label} "
            label_width = self.measurer.text_width(label_text, first_run, first_size)
            rows[0].append(Fragment(label_text, first_run, indent, label_width, first_size))
            text_start = indent + label_width

        x = text_start
        for run in paragraph.runs:
            size = run.font_size * self.scale
            pieces = run.text.split("\n")
            for piece_index, piece in enumerate(pieces):
                if piece_index > 0:
                    rows.append([])
                    x = text_start
                for token in TOKEN_PATTERN.findall(piece):
                    visible = self.measurer.text_width(token.rstrip(), run, size)
                    if rows[-1] and x + visible > width and x > text_start:
                        rows.append([])
                        x = text_start
                        token = token.lstrip()
                        if not token:
                            continue
                    advance = self.measurer.text_width(token, run, size)
                    rows[-1].append(Fragment(token, run, x, advance, size))
                    x += advance

        lines = []
        for row in rows:
            size = max((fragment.size for fragment in row), default=first_size)
            size_mm = points_to_mm(size)
            height = size_mm * LINE_HEIGHT_FACTOR
            shifted = self._align(row, paragraph.alignment, width)
            lines.append(
                Line(
                    fragments=tuple(shifted),
                    top=top,
                    height=height,
                    baseline=top + size_mm * ASCENT_FACTOR + (height - size_mm) / 2,
                )
            )
            top += height
        return lines

    def _align(self, row: list[Fragment], alignment: str, width: float) -> list[Fragment]:
        if not row or alignment not in ("center", "right"):
            return row
        last = row[-1]
        end = last.x + self.measurer.text_width(last.text.rstrip(), last.run, last.size)
        start = row[0].x
        slack = width - (end - start)
        shift = slack / 2 - start if alignment == "center" else slack - start
        return [
            Fragment(f.text, f.run, f.x + shift, f.width, f.size) for f in row
        ]


def anchor_offset(anchor: str, available: float, used: float) -> float:
    """Vertical offset of a text block inside its area.

    Overflowing text stays pinned to the top edge.
    """
    if anchor == "middle":
        return max((available - used) / 2, 0.0)
    if anchor == "bottom":
        return max(available - used, 0.0)
    return 0.0
