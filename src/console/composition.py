"""
Layout composition engine.

An editor session loads one device's layout, lets the operator rearrange
it, then writes it back: the descriptor first, then the position and
rotation of every placed video onto that video's link record. Images are
only ever stored in the descriptor.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence

from src.common.ipc import MessagePublisher, MessageType
from src.common.logger import setup_logger
from src.console import ConsoleClientError, EditorSessionClosedError
from src.console.catalog import ContentCatalog, merge_advertisements
from src.console.descriptor import LayoutDescriptor, descriptor_from_response
from src.console.models import Advertisement, ContentRef, LinkRecord
from src.console.slot_model import SlotModel, sort_links

logger = setup_logger(__name__)


@dataclass
class LinkUpdateFailure:
    """A link record whose slot settings could not be written."""
    link_id: Optional[int]
    video_name: str
    position: int
    error: str


@dataclass
class SaveResult:
    """
    Outcome of saving one device.

    success reflects only the descriptor write; link update failures are
    reported alongside it.
    """
    mobile_id: str
    success: bool
    error: Optional[str] = None
    links_updated: int = 0
    link_failures: List[LinkUpdateFailure] = field(default_factory=list)

    @property
    def fully_successful(self) -> bool:
        return self.success and not self.link_failures


def save_layout(
    client,
    mobile_id: str,
    descriptor: LayoutDescriptor,
    links: Iterable[LinkRecord],
    publisher: Optional[MessagePublisher] = None,
) -> SaveResult:
    """
    Persist a descriptor for a device and sync its link records.

    Args:
        client: ConsoleAPIClient
        mobile_id: Target device
        descriptor: Layout to store wholesale
        links: Link records of the target device
        publisher: Optional event publisher told about the save

    Returns:
        SaveResult; never raises for collaborator failures
    """
    try:
        client.save_layout(mobile_id, descriptor.layout_mode, descriptor.to_config())
    except ConsoleClientError as e:
        logger.error("Saving layout for %s failed: %s", mobile_id, e)
        return SaveResult(mobile_id, success=False, error=str(e))

    link_by_video = {}
    for link in sort_links(links):
        if link.mobile_id and link.mobile_id != mobile_id:
            continue
        link_by_video.setdefault(link.video_name, link)

    result = SaveResult(mobile_id, success=True)
    for entry in descriptor.entries:
        if entry.content is None or not entry.content.is_video:
            continue
        link = link_by_video.get(entry.content.name)
        if link is None or link.id is None:
            logger.debug("No link record for %s on %s, descriptor only", entry.content.name, mobile_id)
            continue
        try:
            client.update_link_settings(link.id, entry.position, entry.rotation)
            result.links_updated += 1
        except ConsoleClientError as e:
            logger.warning(
                "Updating link %s (%s) on %s failed: %s",
                link.id, entry.content.name, mobile_id, e,
            )
            result.link_failures.append(
                LinkUpdateFailure(link.id, entry.content.name, entry.position, str(e))
            )

    logger.info(
        "Saved %s layout for %s (%d link(s) updated, %d failed)",
        descriptor.layout_mode, mobile_id, result.links_updated, len(result.link_failures),
    )

    if publisher is not None:
        publisher.notify(MessageType.LAYOUT_SAVED, {
            'mobile_ids': [mobile_id],
            'layout_mode': descriptor.layout_mode,
        })

    return result


class LayoutEditor:
    """
    Editor session for one device's layout.

    The session owns its slot model exclusively. Once closed it refuses to
    save, and a group apply in progress stops after the current device.

    Example:
        with LayoutEditor(client, 'device-01', links, group_name='lobby') as editor:
            editor.open()
            editor.change_preset('split_h')
            editor.assign(2, ContentRef.image('promo.png'))
            result = editor.save()
    """

    def __init__(
        self,
        client,
        mobile_id: str,
        links: Iterable[LinkRecord] = (),
        group_name: Optional[str] = None,
        advertisements: Iterable[Advertisement] = (),
        publisher: Optional[MessagePublisher] = None,
    ):
        """
        Args:
            client: ConsoleAPIClient
            mobile_id: Device being edited
            links: The device's link records
            group_name: Group of the device, used for its advertisements
            advertisements: Extra advertisements to offer
            publisher: Optional event publisher
        """
        self.client = client
        self.mobile_id = mobile_id
        self.group_name = group_name or None
        self.publisher = publisher
        self._links = [link for link in links if not link.mobile_id or link.mobile_id == mobile_id]
        self._extra_advertisements = list(advertisements)
        self._model: Optional[SlotModel] = None
        self._closed = False

    def open(self) -> SlotModel:
        """
        Load the device's descriptor and build the slot model.

        A missing or unusable descriptor falls back to the link records.
        A failed group advertisement lookup leaves the catalog as passed in.
        """
        descriptor = None
        try:
            descriptor = descriptor_from_response(self.client.get_layout(self.mobile_id))
        except ConsoleClientError as e:
            logger.warning("Could not load layout for %s, using link records: %s", self.mobile_id, e)

        group_ads = ContentCatalog(self.client).group_advertisements(self.group_name or "")
        advertisements = merge_advertisements(self._extra_advertisements, group_ads)

        self._model = SlotModel.from_descriptor(descriptor, self._links, advertisements)
        logger.info(
            "Opened editor for %s: %s with %d slot(s)%s",
            self.mobile_id, self._model.layout_mode, self._model.slot_count,
            "" if descriptor is not None else " from link records",
        )
        return self._model

    @property
    def model(self) -> SlotModel:
        if self._model is None:
            self.open()
        return self._model

    @property
    def is_closed(self) -> bool:
        return self._closed

    # Mutations delegate to the slot model

    def assign(self, position: int, content: ContentRef, rotation: Optional[int] = None) -> None:
        self.model.assign(position, content, rotation)

    def clear(self, position: int) -> None:
        self.model.clear(position)

    def set_rotation(self, position: int, rotation: Optional[int]) -> None:
        self.model.set_rotation(position, rotation)

    def preview_preset_change(self, preset_id: str) -> List[ContentRef]:
        return self.model.preview_preset_change(preset_id)

    def change_preset(self, preset_id: str) -> List[ContentRef]:
        return self.model.change_preset(preset_id)

    def available_videos(self) -> List[LinkRecord]:
        return self.model.available_videos()

    def available_advertisements(self) -> List[Advertisement]:
        return self.model.available_advertisements()

    def descriptor(self) -> LayoutDescriptor:
        return self.model.to_descriptor()

    def _check_open(self) -> None:
        if self._closed:
            raise EditorSessionClosedError(
                f"Editor for {self.mobile_id} is closed",
                details={'mobile_id': self.mobile_id},
            )

    def save(self) -> SaveResult:
        """
        Save the current layout to this device.

        Raises:
            EditorSessionClosedError: If the session was closed
        """
        self._check_open()
        return save_layout(self.client, self.mobile_id, self.descriptor(), self._links, self.publisher)

    def apply_to_group(
        self,
        members: Sequence,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ):
        """
        Save this layout here, then propagate it to every group member.

        Raises:
            EditorSessionClosedError: If the session was closed
        """
        self._check_open()

        # Imported here: group_sync builds on save_layout
        from src.console.group_sync import GroupSyncEngine

        engine = GroupSyncEngine(self.client, self.publisher)
        return engine.sync(
            self.mobile_id,
            self.descriptor(),
            self.group_name,
            members,
            self._links,
            should_continue=lambda: not self._closed,
            on_progress=on_progress,
        )

    def close(self) -> None:
        """Close the session; later saves are refused."""
        if not self._closed:
            self._closed = True
            logger.debug("Closed editor for %s", self.mobile_id)

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close the session."""
        self.close()
        return False
