"""
units.py: EMU conversions and rendering constants.

This is the foundation module. ALL geometry math goes through these constants and
functions. Conversions are plain divisions: no rounding happens here, only at final
placement on the output page.

EMU = English Metric Units (914400 EMUs per inch, 12700 per point, 36000 per mm)
"""

from pptx.util import Inches, Pt

# =============================================================================
# UNIT CONVERSIONS
# =============================================================================

EMU_PER_INCH = 914400
EMU_PER_POINT = 12700
EMU_PER_CM = 360000
EMU_PER_MM = 36000

MM_PER_INCH = 25.4
POINTS_PER_INCH = 72


def emu_to_points(emu: int) -> float:
    """Convert EMUs to points."""
    return emu / EMU_PER_POINT


def emu_to_inches(emu: int) -> float:
    """Convert EMUs to inches."""
    return emu / EMU_PER_INCH


def emu_to_mm(emu: int) -> float:
    """Convert EMUs to millimeters."""
    return emu / EMU_PER_MM


def emu_to_cm(emu: int) -> float:
    """Convert EMUs to centimeters."""
    return emu / EMU_PER_CM


def points_to_emu(pt: float) -> int:
    """Convert points to EMUs (font sizes, line widths)."""
    return int(pt * EMU_PER_POINT)


def inches_to_emu(inches: float) -> int:
    """Convert inches to EMUs."""
    return int(inches * EMU_PER_INCH)


def mm_to_emu(mm: float) -> int:
    """Convert millimeters to EMUs."""
    return int(mm * EMU_PER_MM)


def mm_to_points(mm: float) -> float:
    """Convert millimeters to PDF points."""
    return mm * POINTS_PER_INCH / MM_PER_INCH


def mm_to_pixels(mm: float, dpi: int) -> float:
    """Convert millimeters to pixels at the given resolution."""
    return mm * dpi / MM_PER_INCH


# =============================================================================
# SLIDE DEFAULTS
# =============================================================================

# 4:3 screen, used when presentation.xml carries no <p:sldSz>
DEFAULT_SLIDE_WIDTH_EMU = int(Inches(10))
DEFAULT_SLIDE_HEIGHT_EMU = int(Inches(7.5))

# A4, the bounding box for pages derived from the slide aspect ratio
A4_LONG_EDGE_MM = 297.0
A4_SHORT_EDGE_MM = 210.0

# =============================================================================
# TEXT DEFAULTS
# =============================================================================

# Hard fallback at the bottom of the formatting cascade
FALLBACK_FONT_SIZE_PT = 18.0
FALLBACK_TEXT_COLOR = "#000000"
FALLBACK_FONT_FAMILY = "Calibri"

# <a:bodyPr> default insets
DEFAULT_INSET_LEFT_EMU = 91440
DEFAULT_INSET_RIGHT_EMU = 91440
DEFAULT_INSET_TOP_EMU = 45720
DEFAULT_INSET_BOTTOM_EMU = 45720

DEFAULT_STROKE_WIDTH_EMU = int(Pt(0.75))
LINE_HEIGHT_FACTOR = 1.2
PARAGRAPH_SPACING_FACTOR = 0.2
BULLET_INDENT_PER_LEVEL_EMU = 342900

DEFAULT_BULLET_CHAR = "•"

# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def clamp(value: float, min_val: float, max_val: float) -> float:
    """Clamp a value between min and max."""
    return max(min_val, min(max_val, value))


def hex_to_rgb(hex_color: str) -> tuple:
    """Convert hex color string to RGB tuple (0-255)."""
    hex_color = hex_color.lstrip('#')
    return tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))


def rgb_to_hex(r: int, g: int, b: int) -> str:
    """Convert RGB tuple to hex color string."""
    return f"#{r:02X}{g:02X}{b:02X}"
