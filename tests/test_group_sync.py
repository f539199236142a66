"""
Tests for the group synchronization engine.
"""

from unittest.mock import MagicMock

import pytest

from src.common.ipc import MessagePublisher, MessageType
from src.console import (
    ConsoleClientError,
    ConsoleNotFoundError,
    ConsoleTimeoutError,
)
from src.console.descriptor import LayoutDescriptor, SlotEntry
from src.console.group_sync import GroupMember, GroupSyncEngine, members_from_links
from src.console.models import ContentRef

from tests.conftest import link


@pytest.fixture
def descriptor():
    return LayoutDescriptor('split_h', (
        SlotEntry(1, ContentRef.video('a.mp4')),
        SlotEntry(2, ContentRef.image('c.png')),
    ))


@pytest.fixture
def members():
    """Three devices, the source first, each with its own a.mp4 link."""
    return [
        GroupMember('dev-1', (link(10, 'a.mp4', mobile_id='dev-1'),)),
        GroupMember('dev-2', (link(20, 'a.mp4', mobile_id='dev-2'),)),
        GroupMember('dev-3', (link(30, 'a.mp4', mobile_id='dev-3'),)),
    ]


@pytest.fixture
def source_links(members):
    return members[0].links


def saved_devices(client):
    return [c[0][0] for c in client.save_layout.call_args_list]


class TestSourceSave:
    """Tests for the first step: saving the source device."""

    def test_source_failure_aborts(self, client, descriptor, members, source_links):
        """Test a failed source save leaves the group untouched."""
        client.save_layout.side_effect = ConsoleTimeoutError("Request timed out")

        report = GroupSyncEngine(client).sync('dev-1', descriptor, 'Lobby', members, source_links)

        assert report.aborted is True
        assert (report.devices_attempted, report.devices_succeeded, report.devices_failed) == (1, 0, 1)
        client.sync_group_layout.assert_not_called()
        assert client.save_layout.call_count == 1


class TestBatchFallback:
    """Tests for the batched call and the per-device fallback."""

    def test_batch_404_one_device_fails(self, client, descriptor, members, source_links):
        """Test group of 3, batch 404, one device failing gives {3, 2, 1}."""
        client.sync_group_layout.side_effect = ConsoleNotFoundError("Not found", status_code=404)

        def save(mobile_id, layout_mode, layout_config):
            if mobile_id == 'dev-3':
                raise ConsoleClientError("Request failed", status_code=500)
            return {}

        client.save_layout.side_effect = save

        report = GroupSyncEngine(client).sync('dev-1', descriptor, 'Lobby', members, source_links)

        assert (report.devices_attempted, report.devices_succeeded, report.devices_failed) == (3, 2, 1)
        assert report.fully_successful is False
        assert report.used_batch is False
        # Source saved in step one and again in the fallback
        assert saved_devices(client) == ['dev-1', 'dev-1', 'dev-2', 'dev-3']
        failed = [o for o in report.outcomes if not o.success]
        assert [o.mobile_id for o in failed] == ['dev-3']

    @pytest.mark.parametrize("error", [
        ConsoleNotFoundError("Not found", status_code=404),
        ConsoleClientError("Request failed", status_code=500),
        ConsoleTimeoutError("Request timed out"),
    ])
    def test_batch_failure_falls_back_for_every_member(self, client, descriptor, members, source_links, error):
        """Test any batch failure means a per-device save for every member."""
        client.sync_group_layout.side_effect = error

        report = GroupSyncEngine(client).sync('dev-1', descriptor, 'Lobby', members, source_links)

        assert report.devices_attempted == len(members)
        assert report.fully_successful is True
        assert saved_devices(client)[1:] == ['dev-1', 'dev-2', 'dev-3']

    def test_each_device_uses_its_own_links(self, client, descriptor, members, source_links):
        """Test per-device saves update each device's own link record."""
        client.sync_group_layout.side_effect = ConsoleNotFoundError("Not found", status_code=404)

        GroupSyncEngine(client).sync('dev-1', descriptor, 'Lobby', members, source_links)

        updated = [c[0][0] for c in client.update_link_settings.call_args_list]
        assert updated == [10, 10, 20, 30]

    def test_batch_success_handles_all(self, client, descriptor, members, source_links):
        """Test a successful batch without an id list covers every member."""
        client.sync_group_layout.return_value = {'devices_updated': 3}

        report = GroupSyncEngine(client).sync('dev-1', descriptor, 'Lobby', members, source_links)

        assert report.used_batch is True
        assert report.batch_devices_updated == 3
        assert report.devices_succeeded == 3
        assert saved_devices(client) == ['dev-1']
        client.sync_group_layout.assert_called_once_with(
            'Lobby', 'dev-1', 'split_h', descriptor.to_config()
        )

    def test_batch_lists_updated_ids(self, client, descriptor, members, source_links):
        """Test members missing from the batch response are saved one by one."""
        client.sync_group_layout.return_value = {'devices_updated': 2, 'mobile_ids': ['dev-1', 'dev-2']}

        report = GroupSyncEngine(client).sync('dev-1', descriptor, 'Lobby', members, source_links)

        assert saved_devices(client) == ['dev-1', 'dev-3']
        assert report.devices_attempted == 3
        assert {o.mobile_id: o.via for o in report.outcomes} == {
            'dev-1': 'batch', 'dev-2': 'batch', 'dev-3': 'device',
        }

    def test_no_group_name_skips_batch(self, client, descriptor, members, source_links):
        """Test without a group name only per-device saves are used."""
        report = GroupSyncEngine(client).sync('dev-1', descriptor, None, members, source_links)
        client.sync_group_layout.assert_not_called()
        assert report.devices_attempted == 3

    def test_duplicate_members_saved_once(self, client, descriptor, members, source_links):
        """Test a member listed twice is only counted once."""
        client.sync_group_layout.side_effect = ConsoleNotFoundError("Not found", status_code=404)
        report = GroupSyncEngine(client).sync(
            'dev-1', descriptor, 'Lobby', members + [members[1]], source_links
        )
        assert report.devices_attempted == 3


class TestProgressAndCancel:
    """Tests for the progress callback and cancellation."""

    def test_progress_reported_per_device(self, client, descriptor, members, source_links):
        """Test on_progress is called after every per-device save."""
        client.sync_group_layout.side_effect = ConsoleNotFoundError("Not found", status_code=404)
        progress = MagicMock()

        GroupSyncEngine(client).sync(
            'dev-1', descriptor, 'Lobby', members, source_links, on_progress=progress
        )

        assert [c[0] for c in progress.call_args_list] == [(1, 3), (2, 3), (3, 3)]

    def test_should_continue_false_stops(self, client, descriptor, members, source_links):
        """Test no per-device saves happen once should_continue says stop."""
        client.sync_group_layout.side_effect = ConsoleNotFoundError("Not found", status_code=404)

        report = GroupSyncEngine(client).sync(
            'dev-1', descriptor, 'Lobby', members, source_links, should_continue=lambda: False
        )

        assert report.cancelled is True
        assert report.devices_attempted == 0
        assert saved_devices(client) == ['dev-1']


class TestEvents:
    """Tests for the group_synced event."""

    def test_group_synced_published(self, client, descriptor, members, source_links):
        """Test the publisher hears which devices were updated."""
        client.sync_group_layout.return_value = {}
        publisher = MagicMock(spec=MessagePublisher)

        GroupSyncEngine(client, publisher).sync('dev-1', descriptor, 'Lobby', members, source_links)

        publisher.notify.assert_called_once()
        msg_type, data = publisher.notify.call_args[0]
        assert msg_type == MessageType.GROUP_SYNCED
        assert data['mobile_ids'] == ['dev-1', 'dev-2', 'dev-3']


class TestMembersFromLinks:
    """Tests for deriving group members from link records."""

    def test_members_in_first_seen_order(self):
        """Test members keep first-seen order and only their own links."""
        records = [
            link(1, 'a.mp4', mobile_id='dev-2'),
            link(2, 'a.mp4', mobile_id='dev-1'),
            link(3, 'b.mp4', mobile_id='dev-2'),
            link(4, 'a.mp4', mobile_id='dev-9', gname='Other'),
        ]
        members = members_from_links(records, 'Lobby')
        assert [m.mobile_id for m in members] == ['dev-2', 'dev-1']
        assert [record.id for record in members[0].links] == [1, 3]
