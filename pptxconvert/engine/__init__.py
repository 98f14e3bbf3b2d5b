# Units and rendering constants

from .units import (
    EMU_PER_INCH,
    EMU_PER_MM,
    EMU_PER_POINT,
    emu_to_inches,
    emu_to_mm,
    emu_to_points,
    inches_to_emu,
    mm_to_emu,
    mm_to_points,
    points_to_emu,
)

__all__ = [
    "EMU_PER_INCH",
    "EMU_PER_MM",
    "EMU_PER_POINT",
    "emu_to_inches",
    "emu_to_mm",
    "emu_to_points",
    "inches_to_emu",
    "mm_to_emu",
    "mm_to_points",
    "points_to_emu",
]
