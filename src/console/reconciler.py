"""
Device row reconciler.

Turns flat link records, stored layout descriptors and live telemetry into
one immutable snapshot of device rows for the listing view. The per-device
slot view is built with the same slot model the editor uses, so the listing
and a freshly opened editor always show the same arrangement.
"""

import time
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from src.common.logger import setup_logger
from src.console.descriptor import LayoutDescriptor
from src.console.group_sync import GroupMember
from src.console.models import LinkRecord
from src.console.presets import DEFAULT_PRESET_ID
from src.console.slot_model import SlotModel, sort_links
from src.console.telemetry import DownloadProgress

logger = setup_logger(__name__)

UNASSIGNED_GROUP = "Unassigned"


@dataclass(frozen=True)
class SlotView:
    """Read-only rendering of one slot."""
    position: int
    kind: str  # "video", "image" or "empty"
    name: Optional[str] = None
    rotation: Optional[int] = None


@dataclass(frozen=True)
class DeviceRow:
    """One device of the listing, rebuilt on every poll cycle."""
    mobile_id: str
    gname: str
    shop_name: str
    device_name: str = ""
    temperature: Optional[float] = None
    daily_count: int = 0
    monthly_count: int = 0
    is_active: bool = True
    links: Tuple[LinkRecord, ...] = ()
    is_online: bool = False
    layout_mode: str = DEFAULT_PRESET_ID
    has_descriptor: bool = False
    slot_view: Tuple[SlotView, ...] = ()
    images: Tuple[str, ...] = ()
    download_progress: Optional[DownloadProgress] = None

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.mobile_id, self.gname, self.shop_name)

    @property
    def videos(self) -> List[str]:
        """Linked video names in grid position order."""
        return [link.video_name for link in self.links]

    @property
    def link_id_by_video(self) -> Dict[str, Optional[int]]:
        return {link.video_name: link.id for link in self.links}

    @property
    def is_unassigned(self) -> bool:
        return not self.gname or self.gname == UNASSIGNED_GROUP


@dataclass(frozen=True)
class ListingFilter:
    """Case-insensitive substring filters, all of which must match."""
    device: str = ""
    group: str = ""
    shop: str = ""
    video: str = ""

    def matches(self, row: DeviceRow) -> bool:
        checks = (
            (self.device, row.mobile_id),
            (self.group, row.gname),
            (self.shop, row.shop_name),
            (self.video, ", ".join(row.videos)),
        )
        for needle, haystack in checks:
            needle = (needle or "").strip().lower()
            if needle and needle not in (haystack or "").lower():
                return False
        return True


@dataclass(frozen=True)
class ListingSummary:
    """Totals shown above the device listing."""
    total_devices: int
    online_devices: int
    offline_devices: int
    unassigned_devices: int
    total_groups: int
    total_shops: int
    total_videos: int
    total_links: int
    avg_temperature: Optional[float]
    min_temperature: Optional[float]
    max_temperature: Optional[float]
    total_daily_count: int
    total_monthly_count: int


@dataclass(frozen=True)
class DeviceSnapshot:
    """Immutable result of one reconciliation."""
    rows: Tuple[DeviceRow, ...] = ()
    link_count: int = 0
    loaded_at: float = field(default_factory=time.time)

    @property
    def inactive_count(self) -> int:
        return sum(1 for row in self.rows if not row.is_active)

    def row_for(self, mobile_id: str) -> Optional[DeviceRow]:
        for row in self.rows:
            if row.mobile_id == mobile_id:
                return row
        return None

    def visible(self, listing_filter: Optional[ListingFilter] = None) -> List[DeviceRow]:
        """Active rows matching the filter, online devices first."""
        listing_filter = listing_filter or ListingFilter()
        rows = [row for row in self.rows if row.is_active and listing_filter.matches(row)]
        # sorted() is stable, so the first-seen order holds within each bucket
        return sorted(rows, key=lambda row: 0 if row.is_online else 1)

    def group_members(self, group_name: str) -> List[GroupMember]:
        """Active devices of a group with their link records."""
        members: Dict[str, List[LinkRecord]] = {}
        for row in self.rows:
            if row.gname == group_name and row.is_active:
                members.setdefault(row.mobile_id, []).extend(row.links)
        return [GroupMember(mobile_id, tuple(links)) for mobile_id, links in members.items()]

    def summary(self) -> ListingSummary:
        """
        Totals over every row, inactive devices included.

        Returns:
            ListingSummary
        """
        device_ids = []
        for row in self.rows:
            if row.mobile_id not in device_ids:
                device_ids.append(row.mobile_id)
        online_ids = {row.mobile_id for row in self.rows if row.is_online}
        online = sum(1 for mobile_id in device_ids if mobile_id in online_ids)

        temperatures = [row.temperature for row in self.rows if row.temperature is not None]

        return ListingSummary(
            total_devices=len(device_ids),
            online_devices=online,
            offline_devices=len(device_ids) - online,
            unassigned_devices=sum(1 for row in self.rows if row.is_unassigned),
            total_groups=len({row.gname for row in self.rows if row.gname}),
            total_shops=len({row.shop_name for row in self.rows if row.shop_name}),
            total_videos=len({name for row in self.rows for name in row.videos}),
            total_links=self.link_count,
            avg_temperature=sum(temperatures) / len(temperatures) if temperatures else None,
            min_temperature=min(temperatures) if temperatures else None,
            max_temperature=max(temperatures) if temperatures else None,
            total_daily_count=sum(row.daily_count for row in self.rows),
            total_monthly_count=sum(row.monthly_count for row in self.rows),
        )


def group_link_records(records: Iterable[LinkRecord]) -> List[DeviceRow]:
    """
    Group link records into device rows.

    Rows keep first-seen order. Device-level fields come from the first
    record of each device; links are sorted by grid position.
    """
    first: Dict[Tuple[str, str, str], LinkRecord] = {}
    links: Dict[Tuple[str, str, str], List[LinkRecord]] = {}
    for record in records:
        key = record.device_key
        if key not in first:
            first[key] = record
            links[key] = []
        links[key].append(record)

    rows = []
    for key, head in first.items():
        rows.append(DeviceRow(
            mobile_id=head.mobile_id,
            gname=head.gname,
            shop_name=head.shop_name,
            device_name=head.device_name,
            temperature=head.temperature,
            daily_count=head.daily_count,
            monthly_count=head.monthly_count,
            is_active=head.is_active,
            links=tuple(sort_links(links[key])),
        ))
    return rows


def derive_slot_view(
    descriptor: Optional[LayoutDescriptor],
    links: Iterable[LinkRecord],
) -> Tuple[str, Tuple[SlotView, ...]]:
    """
    Build the read-only slot view of a device.

    Returns:
        (layout_mode, slot views in position order)
    """
    model = SlotModel.from_descriptor(descriptor, links)
    views = tuple(
        SlotView(
            position=slot.position,
            kind=slot.content.kind.value if slot.content is not None else "empty",
            name=slot.content.name if slot.content is not None else None,
            rotation=slot.rotation,
        )
        for slot in model.slots
    )
    return model.layout_mode, views


def reconcile(
    records: Iterable[LinkRecord],
    online: Optional[Mapping[str, bool]] = None,
    layouts: Optional[Mapping[str, Optional[LayoutDescriptor]]] = None,
    progress: Optional[Mapping[str, DownloadProgress]] = None,
    loaded_at: Optional[float] = None,
) -> DeviceSnapshot:
    """
    Merge link records with live status into a snapshot.

    Args:
        records: Every link record
        online: Online flag per mobile_id (missing means offline)
        layouts: Parsed descriptor per mobile_id (missing or None means none)
        progress: Download progress per mobile_id
        loaded_at: Timestamp of the data (defaults to now)

    Returns:
        New DeviceSnapshot
    """
    records = list(records)
    online = online or {}
    layouts = layouts or {}
    progress = progress or {}

    rows = []
    for row in group_link_records(records):
        descriptor = layouts.get(row.mobile_id)
        layout_mode, slot_view = derive_slot_view(descriptor, row.links)
        rows.append(replace(
            row,
            is_online=bool(online.get(row.mobile_id, False)),
            layout_mode=layout_mode,
            has_descriptor=descriptor is not None,
            slot_view=slot_view,
            images=tuple(descriptor.image_names) if descriptor is not None else (),
            download_progress=progress.get(row.mobile_id),
        ))

    snapshot = DeviceSnapshot(
        rows=tuple(rows),
        link_count=len(records),
        loaded_at=loaded_at if loaded_at is not None else time.time(),
    )
    logger.debug("Reconciled %d link(s) into %d device row(s)", len(records), len(rows))
    return snapshot
