"""
Layout descriptor: the per-device serialized arrangement of slots.

The collaborator stores a descriptor as ``layout_mode`` plus
``layout_config``, a JSON string. The writer always emits a bare JSON list
with one entry per slot. The reader is lenient: it also accepts an already
decoded list and a versioned ``{"version": n, "slots": [...]}`` envelope.
Anything it cannot use is reported as "no descriptor".
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from src.common.logger import setup_logger
from src.console.models import ContentKind, ContentRef, Slot, parse_int, normalize_rotation
from src.console.presets import resolve_preset

logger = setup_logger(__name__)

CONTENT_TYPE_EMPTY = "empty"


@dataclass(frozen=True)
class SlotEntry:
    """One slot of a descriptor."""
    position: int
    content: Optional[ContentRef] = None
    rotation: Optional[int] = None

    @property
    def content_type(self) -> str:
        if self.content is None:
            return CONTENT_TYPE_EMPTY
        return self.content.kind.value

    def to_dict(self) -> Dict[str, Any]:
        """Serialize in the collaborator's entry format."""
        is_video = self.content is not None and self.content.is_video
        is_image = self.content is not None and self.content.is_image
        return {
            'position': self.position,
            'video_name': self.content.name if is_video else None,
            'ad_name': self.content.name if is_image else None,
            'content_type': self.content_type,
            'rotation': self.rotation,
        }


@dataclass(frozen=True)
class LayoutDescriptor:
    """A validated descriptor with entries sorted by position."""
    layout_mode: str
    entries: Tuple[SlotEntry, ...] = field(default_factory=tuple)

    @property
    def slot_count(self) -> int:
        """Slots of the preset; list mode grows to the highest position."""
        preset = resolve_preset(self.layout_mode)
        if preset.is_list_mode:
            highest = max((e.position for e in self.entries), default=0)
            return max(preset.slot_count, highest)
        return preset.slot_count

    def entry_at(self, position: int) -> Optional[SlotEntry]:
        for entry in self.entries:
            if entry.position == position:
                return entry
        return None

    @property
    def image_names(self) -> List[str]:
        return [e.content.name for e in self.entries if e.content is not None and e.content.is_image]

    @property
    def video_names(self) -> List[str]:
        return [e.content.name for e in self.entries if e.content is not None and e.content.is_video]

    def to_list(self) -> List[Dict[str, Any]]:
        """One entry per slot, empty slots included."""
        return [
            (self.entry_at(position) or SlotEntry(position)).to_dict()
            for position in range(1, self.slot_count + 1)
        ]

    def to_config(self) -> str:
        """Serialize entries into the layout_config JSON string."""
        return json.dumps(self.to_list())

    def to_payload(self) -> Dict[str, Any]:
        """Body for POST /device/{id}/layout."""
        return {'layout_mode': self.layout_mode, 'layout_config': self.to_config()}

    @classmethod
    def from_slots(cls, layout_mode: str, slots: Sequence[Slot]) -> "LayoutDescriptor":
        """Snapshot a slot model into a descriptor."""
        entries = tuple(
            SlotEntry(slot.position, slot.content, slot.rotation if slot.content is not None else None)
            for slot in sorted(slots, key=lambda s: s.position)
        )
        return cls(layout_mode, entries)


def _parse_entry(raw: Any) -> Optional[SlotEntry]:
    if not isinstance(raw, dict):
        return None

    position = parse_int(raw.get('position'))
    if position is None or position < 1:
        return None

    video_name = raw.get('video_name') or None
    ad_name = raw.get('ad_name') or None
    content_type = raw.get('content_type')

    content = None
    if content_type == ContentKind.VIDEO.value:
        if video_name:
            content = ContentRef.video(str(video_name))
    elif content_type == ContentKind.IMAGE.value:
        if ad_name:
            content = ContentRef.image(str(ad_name))
    elif content_type is None:
        # Legacy entries predate content_type
        if video_name:
            content = ContentRef.video(str(video_name))
        elif ad_name:
            content = ContentRef.image(str(ad_name))

    rotation = normalize_rotation(raw.get('rotation')) if content is not None else None
    return SlotEntry(position, content, rotation)


def parse_descriptor(layout_mode: Optional[str], layout_config: Any) -> Optional[LayoutDescriptor]:
    """
    Parse a stored descriptor.

    Args:
        layout_mode: Stored preset id; unknown ids resolve to single
        layout_config: JSON string, decoded list or versioned envelope

    Returns:
        LayoutDescriptor, or None when there is no usable descriptor
    """
    raw = layout_config
    if isinstance(raw, (str, bytes)):
        if not raw.strip():
            logger.debug("Empty layout_config, treating as no descriptor")
            return None
        try:
            raw = json.loads(raw)
        except ValueError as e:
            logger.debug("Unparseable layout_config, treating as no descriptor: %s", e)
            return None

    if isinstance(raw, dict) and 'slots' in raw:
        logger.debug("Reading versioned descriptor envelope (version=%s)", raw.get('version'))
        raw = raw['slots']

    if not isinstance(raw, list) or not raw:
        logger.debug("layout_config is not a non-empty list, treating as no descriptor")
        return None

    preset = resolve_preset(layout_mode)

    entries: List[SlotEntry] = []
    seen_positions = set()
    seen_content = set()
    for raw_entry in raw:
        entry = _parse_entry(raw_entry)
        if entry is None:
            logger.debug("Skipping descriptor entry without a valid position: %r", raw_entry)
            continue
        if not preset.is_list_mode and entry.position > preset.slot_count:
            logger.debug("Skipping descriptor entry beyond %s: %r", preset.id, raw_entry)
            continue
        if entry.position in seen_positions:
            logger.debug("Duplicate position %d in descriptor, keeping the first", entry.position)
            continue
        seen_positions.add(entry.position)
        if entry.content is not None:
            if entry.content in seen_content:
                logger.debug("%s repeated at position %d, dropping it", entry.content, entry.position)
                entry = SlotEntry(entry.position)
            else:
                seen_content.add(entry.content)
        entries.append(entry)

    if not entries:
        logger.debug("Descriptor has no usable entries, treating as no descriptor")
        return None

    entries.sort(key=lambda e: e.position)
    return LayoutDescriptor(preset.id, tuple(entries))


def descriptor_from_response(data: Optional[Dict[str, Any]]) -> Optional[LayoutDescriptor]:
    """Parse a GET /device/{id}/layout response body (None means 404)."""
    if not isinstance(data, dict):
        return None
    return parse_descriptor(data.get('layout_mode'), data.get('layout_config'))
