"""
Layout preset catalog.

A preset fixes how many slots a screen is split into and how the slots are
arranged as rows of percentage widths.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from src.console import LayoutValidationError


@dataclass(frozen=True)
class LayoutPreset:
    """An immutable screen layout."""
    id: str
    name: str
    slot_count: int
    arrangement: Tuple[Tuple[int, ...], ...]

    @property
    def is_list_mode(self) -> bool:
        """The single preset also holds link-derived lists of any length."""
        return self.id == DEFAULT_PRESET_ID


DEFAULT_PRESET_ID = "single"

PRESETS: Tuple[LayoutPreset, ...] = (
    LayoutPreset("single", "Single", 1, ((100,),)),
    LayoutPreset("split_h", "2 Horizontal", 2, ((50, 50),)),
    LayoutPreset("split_v", "2 Vertical", 2, ((100,), (100,))),
    LayoutPreset("grid_3", "3 Videos", 3, ((50, 50), (100,))),
    LayoutPreset("grid_4", "4 Grid (2×2)", 4, ((50, 50), (50, 50))),
    LayoutPreset("grid_1x4", "4 Grid (1×4)", 4, ((100,), (100,), (100,), (100,))),
)

_BY_ID = {preset.id: preset for preset in PRESETS}


def list_presets() -> List[LayoutPreset]:
    """Return all presets in display order."""
    return list(PRESETS)


def get_preset(preset_id: str) -> LayoutPreset:
    """
    Look up a preset requested by the operator.

    Args:
        preset_id: Preset identifier

    Returns:
        The matching preset

    Raises:
        LayoutValidationError: If the id is unknown
    """
    preset = _BY_ID.get(preset_id)
    if preset is None:
        raise LayoutValidationError(
            f"Unknown layout preset: {preset_id}",
            details={'known': sorted(_BY_ID)},
        )
    return preset


def resolve_preset(preset_id: Optional[str]) -> LayoutPreset:
    """Look up a stored preset id; unknown or missing ids become single."""
    return _BY_ID.get(preset_id or "", _BY_ID[DEFAULT_PRESET_ID])


def smallest_preset_for(count: int) -> LayoutPreset:
    """
    Pick the first preset with room for count items.

    Raises:
        LayoutValidationError: If no preset has enough slots
    """
    for preset in PRESETS:
        if preset.slot_count >= count:
            return preset
    raise LayoutValidationError(
        f"No layout holds {count} items",
        details={'max_slots': max(p.slot_count for p in PRESETS)},
    )
