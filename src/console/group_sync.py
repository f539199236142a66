"""
Group synchronization engine.

Propagates one device's layout to every device of its group. The source is
saved first; a batched collaborator call is tried next; every member the
batch did not cover is then saved one by one against its own link records.
Failures are counted, never rolled back.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from src.common.ipc import MessagePublisher, MessageType
from src.common.logger import setup_logger
from src.console import ConsoleClientError
from src.console.composition import SaveResult, save_layout
from src.console.descriptor import LayoutDescriptor
from src.console.models import LinkRecord

logger = setup_logger(__name__)

VIA_SOURCE = "source"
VIA_BATCH = "batch"
VIA_DEVICE = "device"


@dataclass(frozen=True)
class GroupMember:
    """A device of the group and its own link records."""
    mobile_id: str
    links: Tuple[LinkRecord, ...] = ()


@dataclass
class DeviceSyncOutcome:
    """What happened to one device during a group sync."""
    mobile_id: str
    success: bool
    via: str
    error: Optional[str] = None
    link_failures: int = 0


@dataclass
class GroupSyncReport:
    """Counts and per-device outcomes of a group sync."""
    group_name: Optional[str]
    source_mobile_id: str
    devices_attempted: int = 0
    devices_succeeded: int = 0
    devices_failed: int = 0
    aborted: bool = False
    cancelled: bool = False
    used_batch: bool = False
    batch_devices_updated: int = 0
    outcomes: List[DeviceSyncOutcome] = field(default_factory=list)

    @property
    def fully_successful(self) -> bool:
        return not self.aborted and not self.cancelled and self.devices_failed == 0

    def record(self, outcome: DeviceSyncOutcome) -> None:
        self.outcomes.append(outcome)
        self.devices_attempted += 1
        if outcome.success:
            self.devices_succeeded += 1
        else:
            self.devices_failed += 1

    def to_dict(self) -> Dict:
        return {
            'group_name': self.group_name,
            'source_mobile_id': self.source_mobile_id,
            'devices_attempted': self.devices_attempted,
            'devices_succeeded': self.devices_succeeded,
            'devices_failed': self.devices_failed,
            'aborted': self.aborted,
            'cancelled': self.cancelled,
            'used_batch': self.used_batch,
        }


def members_from_links(records: Iterable[LinkRecord], group_name: str) -> List[GroupMember]:
    """Group members in first-seen order, each with its own link records."""
    by_device: Dict[str, List[LinkRecord]] = {}
    for record in records:
        if record.gname != group_name:
            continue
        by_device.setdefault(record.mobile_id, []).append(record)
    return [GroupMember(mobile_id, tuple(links)) for mobile_id, links in by_device.items()]


class GroupSyncEngine:
    """
    Best-effort propagation of a layout across a group.

    Example:
        engine = GroupSyncEngine(client)
        report = engine.sync('dev-1', descriptor, 'lobby', members, source_links)
        if not report.fully_successful:
            ...
    """

    def __init__(self, client, publisher: Optional[MessagePublisher] = None):
        """
        Args:
            client: ConsoleAPIClient
            publisher: Optional event publisher told about the sync
        """
        self.client = client
        self.publisher = publisher

    def _try_batch(
        self,
        group_name: str,
        source_mobile_id: str,
        descriptor: LayoutDescriptor,
        member_ids: List[str],
        report: GroupSyncReport,
    ) -> List[str]:
        """
        Attempt the batched sync.

        Returns:
            Member ids the batch handled (empty when it failed)
        """
        try:
            response = self.client.sync_group_layout(
                group_name,
                source_mobile_id,
                descriptor.layout_mode,
                descriptor.to_config(),
            )
        except ConsoleClientError as e:
            logger.info(
                "Batched sync for group %s unavailable (%s), saving devices one by one",
                group_name, e,
            )
            return []

        report.used_batch = True
        try:
            report.batch_devices_updated = int(response.get('devices_updated') or 0)
        except (TypeError, ValueError):
            report.batch_devices_updated = 0

        listed = response.get('mobile_ids')
        if isinstance(listed, list):
            listed_ids = {str(mobile_id) for mobile_id in listed}
            handled = [mobile_id for mobile_id in member_ids if mobile_id in listed_ids]
        else:
            handled = list(member_ids)

        logger.info(
            "Batched sync for group %s handled %d of %d device(s)",
            group_name, len(handled), len(member_ids),
        )
        return handled

    def sync(
        self,
        source_mobile_id: str,
        descriptor: LayoutDescriptor,
        group_name: Optional[str],
        members: Sequence[GroupMember],
        source_links: Iterable[LinkRecord],
        should_continue: Optional[Callable[[], bool]] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> GroupSyncReport:
        """
        Save the layout on the source device, then on every group member.

        Args:
            source_mobile_id: Device the layout was edited on
            descriptor: Layout to propagate
            group_name: Group name; without one the batch step is skipped
            members: Group devices (the source may be among them)
            source_links: Link records of the source device
            should_continue: Checked before each per-device save
            on_progress: Called with (current, total) after each per-device save

        Returns:
            GroupSyncReport; partial failure is reported, never raised
        """
        report = GroupSyncReport(group_name, source_mobile_id)

        source_result = save_layout(self.client, source_mobile_id, descriptor, source_links)
        if not source_result.success:
            report.aborted = True
            report.record(DeviceSyncOutcome(source_mobile_id, False, VIA_SOURCE, source_result.error))
            logger.error(
                "Group sync for %s aborted: source %s could not be saved",
                group_name, source_mobile_id,
            )
            return report

        # Keep first occurrence of each member
        unique: Dict[str, GroupMember] = {}
        for member in members:
            unique.setdefault(member.mobile_id, member)
        member_ids = list(unique)

        handled: List[str] = []
        if group_name:
            handled = self._try_batch(group_name, source_mobile_id, descriptor, member_ids, report)
        for mobile_id in handled:
            report.record(DeviceSyncOutcome(mobile_id, True, VIA_BATCH))

        remaining = [unique[mobile_id] for mobile_id in member_ids if mobile_id not in handled]
        total = len(remaining)
        for index, member in enumerate(remaining, start=1):
            if should_continue is not None and not should_continue():
                report.cancelled = True
                logger.warning(
                    "Group sync for %s stopped with %d device(s) left",
                    group_name, total - index + 1,
                )
                break

            result = self._save_member(member, descriptor)
            report.record(DeviceSyncOutcome(
                member.mobile_id,
                result.success,
                VIA_DEVICE,
                result.error,
                len(result.link_failures),
            ))

            if on_progress is not None:
                on_progress(index, total)

        self._log_report(report)

        if self.publisher is not None:
            self.publisher.notify(MessageType.GROUP_SYNCED, {
                'group_name': group_name,
                'mobile_ids': [o.mobile_id for o in report.outcomes if o.success],
                'layout_mode': descriptor.layout_mode,
            })

        return report

    def _save_member(self, member: GroupMember, descriptor: LayoutDescriptor) -> SaveResult:
        # Anything save_layout does not contain counts as a failed device
        try:
            return save_layout(self.client, member.mobile_id, descriptor, member.links)
        except Exception as e:
            logger.exception("Unexpected error saving layout for %s", member.mobile_id)
            return SaveResult(member.mobile_id, success=False, error=str(e))

    def _log_report(self, report: GroupSyncReport) -> None:
        if report.fully_successful:
            logger.info(
                "Group sync for %s: all %d device(s) updated",
                report.group_name, report.devices_succeeded,
            )
        else:
            failed = [o.mobile_id for o in report.outcomes if not o.success]
            logger.warning(
                "Group sync for %s partially failed: %d attempted, %d succeeded, %d failed %s",
                report.group_name, report.devices_attempted, report.devices_succeeded,
                report.devices_failed, failed,
            )
