"""
Device content edits outside the layout editor.

Adds and removes a device's video links and, when images are requested,
writes a descriptor that shows just those images. Every write is attempted
and failures are collected, so one bad request never leaves the rest undone.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from src.common.ipc import MessagePublisher, MessageType
from src.common.logger import setup_logger
from src.console import ConsoleClientError, LayoutValidationError
from src.console.catalog import ContentCatalog
from src.console.descriptor import LayoutDescriptor, SlotEntry
from src.console.models import ContentRef
from src.console.presets import PRESETS, smallest_preset_for
from src.console.reconciler import DeviceRow

logger = setup_logger(__name__)

MAX_IMAGES = max(preset.slot_count for preset in PRESETS)


@dataclass
class OperationFailure:
    """One write that did not go through."""
    operation: str  # "delete_link", "create_link" or "save_layout"
    target: str
    error: str


@dataclass
class ContentEditResult:
    """Summary of a content edit on one device."""
    mobile_id: str
    deleted: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    layout_written: bool = False
    failures: List[OperationFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures


def _unique(names: Sequence[str]) -> List[str]:
    result: List[str] = []
    for name in names:
        if name and name not in result:
            result.append(name)
    return result


def image_descriptor(images: Sequence[str]) -> LayoutDescriptor:
    """
    Descriptor holding only images, one per slot.

    Raises:
        LayoutValidationError: For more images than the largest preset holds
    """
    if len(images) > MAX_IMAGES:
        raise LayoutValidationError(
            f"At most {MAX_IMAGES} images fit on one screen",
            details={'requested': len(images)},
        )
    preset = smallest_preset_for(len(images))
    entries = tuple(
        SlotEntry(position, ContentRef.image(name))
        for position, name in enumerate(images, start=1)
    )
    return LayoutDescriptor(preset.id, entries)


class DeviceContentEditor:
    """Edits which videos and images a device shows."""

    def __init__(
        self,
        client,
        catalog: Optional[ContentCatalog] = None,
        publisher: Optional[MessagePublisher] = None,
    ):
        self.client = client
        self.catalog = catalog or ContentCatalog(client)
        self.publisher = publisher

    def _validate(self, videos: List[str], images: List[str]) -> None:
        if videos:
            known_videos = set(self.catalog.video_names())
            unknown = [name for name in videos if name not in known_videos]
            if unknown:
                raise LayoutValidationError("Unknown videos", details={'videos': unknown})

        if images:
            known_images = {ad.ad_name for ad in self.catalog.advertisements()}
            unknown = [name for name in images if name not in known_images]
            if unknown:
                raise LayoutValidationError("Unknown advertisements", details={'images': unknown})

    def apply(self, row: DeviceRow, videos: Sequence[str], images: Sequence[str] = ()) -> ContentEditResult:
        """
        Make a device show exactly the given videos and images.

        Args:
            row: Current device row
            videos: Video names the device should be linked to
            images: Advertisement names to show (at most four)

        Returns:
            ContentEditResult listing what was written and what failed

        Raises:
            LayoutValidationError: For unknown names or too many images,
                before anything is written
            ConsoleClientError: If the catalog needed for validation cannot be read
        """
        videos = _unique(videos)
        images = _unique(images)
        descriptor = image_descriptor(images) if images else None
        self._validate(videos, images)

        result = ContentEditResult(row.mobile_id)
        before = row.videos
        to_delete = [name for name in before if name not in videos]
        to_add = [name for name in videos if name not in before]
        link_ids = row.link_id_by_video

        for name in to_delete:
            link_id = link_ids.get(name)
            if link_id is None:
                continue
            try:
                self.client.delete_link(link_id)
                result.deleted.append(name)
            except ConsoleClientError as e:
                logger.warning("Removing %s from %s failed: %s", name, row.mobile_id, e)
                result.failures.append(OperationFailure("delete_link", name, str(e)))

        for name in to_add:
            try:
                self.client.create_link(row.mobile_id, row.gname, row.shop_name, name)
                result.created.append(name)
            except ConsoleClientError as e:
                logger.warning("Adding %s to %s failed: %s", name, row.mobile_id, e)
                result.failures.append(OperationFailure("create_link", name, str(e)))

        images_changed = set(images) != set(row.images)
        if (to_delete or to_add or images_changed) and descriptor is not None:
            try:
                self.client.save_layout(row.mobile_id, descriptor.layout_mode, descriptor.to_config())
                result.layout_written = True
            except ConsoleClientError as e:
                logger.warning("Writing image layout for %s failed: %s", row.mobile_id, e)
                result.failures.append(OperationFailure("save_layout", row.mobile_id, str(e)))

        logger.info(
            "Content edit on %s: %d removed, %d added, layout %s, %d failure(s)",
            row.mobile_id, len(result.deleted), len(result.created),
            "written" if result.layout_written else "unchanged", len(result.failures),
        )

        if self.publisher is not None:
            if result.deleted or result.created:
                self.publisher.request_refresh("links changed", [row.mobile_id])
            elif result.layout_written:
                self.publisher.notify(MessageType.LAYOUT_SAVED, {'mobile_ids': [row.mobile_id]})

        return result

    def delete_device(self, row: DeviceRow) -> ContentEditResult:
        """Delete every link record of a device row."""
        result = ContentEditResult(row.mobile_id)
        for link in row.links:
            if link.id is None:
                continue
            try:
                self.client.delete_link(link.id)
                result.deleted.append(link.video_name)
            except ConsoleClientError as e:
                logger.warning("Deleting link %s of %s failed: %s", link.id, row.mobile_id, e)
                result.failures.append(OperationFailure("delete_link", str(link.id), str(e)))

        logger.info("Deleted %d of %d link(s) for %s", len(result.deleted), len(row.links), row.mobile_id)
        if self.publisher is not None and result.deleted:
            self.publisher.request_refresh("device deleted", [row.mobile_id])
        return result
