"""
Slot model: the editable arrangement of content on one device's screen.

Also home of the link-record fallback used both when an editor opens a
device without a descriptor and when the listing derives a device's slot
view, so the two always agree.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from src.common.logger import setup_logger
from src.console import LayoutValidationError
from src.console.descriptor import LayoutDescriptor
from src.console.models import (
    VALID_ROTATIONS,
    Advertisement,
    ContentRef,
    LinkRecord,
    Slot,
)
from src.console.presets import DEFAULT_PRESET_ID, LayoutPreset, get_preset, resolve_preset

logger = setup_logger(__name__)


def check_rotation(rotation: Optional[int]) -> None:
    """Reject anything but None or one of the quarter turns (booleans included)."""
    if rotation is not None and (isinstance(rotation, bool) or rotation not in VALID_ROTATIONS):
        raise LayoutValidationError(
            f"Invalid rotation: {rotation}",
            details={'valid': list(VALID_ROTATIONS)},
        )


def sort_links(links: Iterable[LinkRecord]) -> List[LinkRecord]:
    """Stable sort by grid position, missing positions first as 0."""
    return sorted(links, key=lambda link: link.sort_position)


def fallback_slots(links: Iterable[LinkRecord]) -> List[Slot]:
    """
    Build list-mode slots from link records alone.

    Slot i holds the i-th record's video after sorting by grid position.
    With no records the result is a single empty slot.
    """
    ordered = sort_links(links)
    if not ordered:
        return [Slot(1)]
    return [
        Slot(
            position=index,
            content=ContentRef.video(link.video_name),
            rotation=link.effective_rotation,
            link_id=link.id,
        )
        for index, link in enumerate(ordered, start=1)
    ]


def slots_from_descriptor(descriptor: LayoutDescriptor, links: Iterable[LinkRecord]) -> List[Slot]:
    """
    Place descriptor entries on a full set of slots.

    Video entries recover their link id by video name; entries with no
    matching link record are kept as they are.
    """
    link_by_video: Dict[str, LinkRecord] = {}
    for link in sort_links(links):
        link_by_video.setdefault(link.video_name, link)

    slots = []
    for position in range(1, descriptor.slot_count + 1):
        entry = descriptor.entry_at(position)
        if entry is None or entry.content is None:
            slots.append(Slot(position))
            continue

        link_id = None
        if entry.content.is_video:
            link = link_by_video.get(entry.content.name)
            if link is not None:
                link_id = link.id
            else:
                logger.debug("Descriptor video %s has no link record", entry.content.name)
        slots.append(Slot(position, entry.content, entry.rotation, link_id))
    return slots


class SlotModel:
    """
    Slots of one device plus the content that could fill them.

    Positions are 1-based. A content reference occupies at most one slot.
    """

    def __init__(
        self,
        preset_id: str,
        slots: Sequence[Slot],
        links: Iterable[LinkRecord] = (),
        advertisements: Iterable[Advertisement] = (),
    ):
        """
        Args:
            preset_id: Stored preset id (unknown ids resolve to single)
            slots: Initial slots, positions 1..n
            links: The device's link records (its video catalog)
            advertisements: Image catalog available to the device
        """
        self._preset = resolve_preset(preset_id)
        self._slots: List[Slot] = [
            Slot(s.position, s.content, s.rotation, s.link_id)
            for s in sorted(slots, key=lambda s: s.position)
        ]
        self._links = sort_links(links)
        self._advertisements = list(advertisements)

    @classmethod
    def from_links(
        cls,
        links: Iterable[LinkRecord],
        advertisements: Iterable[Advertisement] = (),
    ) -> "SlotModel":
        links = list(links)
        return cls(DEFAULT_PRESET_ID, fallback_slots(links), links, advertisements)

    @classmethod
    def from_descriptor(
        cls,
        descriptor: Optional[LayoutDescriptor],
        links: Iterable[LinkRecord],
        advertisements: Iterable[Advertisement] = (),
    ) -> "SlotModel":
        """Build from a descriptor, or from link records when there is none."""
        links = list(links)
        if descriptor is None:
            return cls.from_links(links, advertisements)
        return cls(
            descriptor.layout_mode,
            slots_from_descriptor(descriptor, links),
            links,
            advertisements,
        )

    @property
    def preset(self) -> LayoutPreset:
        return self._preset

    @property
    def layout_mode(self) -> str:
        return self._preset.id

    @property
    def slots(self) -> List[Slot]:
        """Copies of the current slots in position order."""
        return [Slot(s.position, s.content, s.rotation, s.link_id) for s in self._slots]

    @property
    def slot_count(self) -> int:
        return len(self._slots)

    @property
    def links(self) -> List[LinkRecord]:
        return list(self._links)

    @property
    def advertisements(self) -> List[Advertisement]:
        return list(self._advertisements)

    def slot(self, position: int) -> Slot:
        self._check_position(position)
        s = self._slots[position - 1]
        return Slot(s.position, s.content, s.rotation, s.link_id)

    def position_of(self, content: ContentRef) -> Optional[int]:
        for s in self._slots:
            if s.content == content:
                return s.position
        return None

    def placed(self) -> List[ContentRef]:
        return [s.content for s in self._slots if s.content is not None]

    def _check_position(self, position: int) -> None:
        if not isinstance(position, int) or not 1 <= position <= len(self._slots):
            raise LayoutValidationError(
                f"Slot {position} is out of range",
                details={'slot_count': len(self._slots)},
            )

    def _default_rotation(self, content: ContentRef) -> Optional[int]:
        if content.is_video:
            for link in self._links:
                if link.video_name == content.name:
                    return link.effective_rotation
        else:
            for ad in self._advertisements:
                if ad.ad_name == content.name:
                    return ad.rotation
        return None

    def _link_id_for(self, content: ContentRef) -> Optional[int]:
        if content.is_video:
            for link in self._links:
                if link.video_name == content.name:
                    return link.id
        return None

    def assign(self, position: int, content: ContentRef, rotation: Optional[int] = None,
               use_default_rotation: bool = True) -> None:
        """
        Put content into a slot, moving it if it already sits elsewhere.

        Args:
            position: Target slot (1-based)
            content: Video or image to place
            rotation: Explicit rotation; when None and use_default_rotation
                is set, the content's own stored rotation is used
            use_default_rotation: Pass False to place with rotation unset

        Raises:
            LayoutValidationError: If the position or rotation is invalid
        """
        self._check_position(position)
        check_rotation(rotation)

        if rotation is None and use_default_rotation:
            rotation = self._default_rotation(content)

        previous = self.position_of(content)
        if previous is not None and previous != position:
            self._slots[previous - 1] = Slot(previous)

        self._slots[position - 1] = Slot(position, content, rotation, self._link_id_for(content))
        logger.debug("Assigned %s to slot %d", content, position)

    def clear(self, position: int) -> None:
        """Empty a slot; positions out of range are ignored."""
        if isinstance(position, int) and 1 <= position <= len(self._slots):
            self._slots[position - 1] = Slot(position)

    def set_rotation(self, position: int, rotation: Optional[int]) -> None:
        """
        Override the rotation of an occupied slot (None unsets it).

        Raises:
            LayoutValidationError: On a bad position, an empty slot or a bad rotation
        """
        self._check_position(position)
        current = self._slots[position - 1]
        if current.is_empty:
            raise LayoutValidationError(f"Slot {position} is empty")
        check_rotation(rotation)
        current.rotation = rotation

    def preview_preset_change(self, preset_id: str) -> List[ContentRef]:
        """Content that change_preset(preset_id) would discard."""
        new_count = get_preset(preset_id).slot_count
        return [s.content for s in self._slots[new_count:] if s.content is not None]

    def change_preset(self, preset_id: str) -> List[ContentRef]:
        """
        Switch to another preset.

        Leading slots keep their content positionally, surplus slots are
        dropped and new slots start empty.

        Returns:
            Content refs that were discarded

        Raises:
            LayoutValidationError: For an unknown preset id
        """
        preset = get_preset(preset_id)
        discarded = self.preview_preset_change(preset_id)

        kept = self._slots[:preset.slot_count]
        for position in range(len(kept) + 1, preset.slot_count + 1):
            kept.append(Slot(position))

        self._slots = kept
        self._preset = preset
        if discarded:
            logger.info("Preset change to %s discarded %d item(s)", preset.id, len(discarded))
        return discarded

    def available_videos(self) -> List[LinkRecord]:
        """Device videos not currently placed in a slot."""
        placed = set(self.placed())
        seen = set()
        result = []
        for link in self._links:
            ref = ContentRef.video(link.video_name)
            if ref in placed or link.video_name in seen:
                continue
            seen.add(link.video_name)
            result.append(link)
        return result

    def available_advertisements(self) -> List[Advertisement]:
        """Catalog images not currently placed in a slot."""
        placed = set(self.placed())
        return [ad for ad in self._advertisements if ContentRef.image(ad.ad_name) not in placed]

    def to_descriptor(self) -> LayoutDescriptor:
        return LayoutDescriptor.from_slots(self.layout_mode, self._slots)
