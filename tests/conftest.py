"""
Pytest fixtures for console tests.

Provides a mocked collaborator client and factories for link records and
descriptors used across the test modules.
"""

import json
from unittest.mock import MagicMock

import pytest

from src.common.config import reset_config
from src.console.api_client import ConsoleAPIClient
from src.console.models import LinkRecord


def link(
    link_id,
    video_name,
    mobile_id="dev-1",
    gname="Lobby",
    shop_name="Main St",
    grid_position=None,
    rotation=None,
    device_rotation=None,
    **device_fields,
):
    """Build a LinkRecord the way the link store returns it."""
    row = {
        'id': link_id,
        'mobile_id': mobile_id,
        'gname': gname,
        'shop_name': shop_name,
        'video_name': video_name,
        'grid_position': grid_position,
        'rotation': rotation,
        'device_rotation': device_rotation,
    }
    row.update(device_fields)
    return LinkRecord.from_dict(row)


def layout_response(layout_mode, entries):
    """Body of GET /device/{id}/layout."""
    return {'layout_mode': layout_mode, 'layout_config': json.dumps(entries)}


@pytest.fixture
def make_link():
    """Factory for LinkRecord instances."""
    return link


@pytest.fixture
def client():
    """Collaborator client with no descriptor and no group advertisements."""
    mock_client = MagicMock(spec=ConsoleAPIClient)
    mock_client.get_layout.return_value = None
    mock_client.get_group_advertisements.return_value = []
    mock_client.save_layout.return_value = {'status': 'ok'}
    mock_client.update_link_settings.return_value = {'status': 'ok'}
    return mock_client


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep host CONSOLE_* settings out of the tests."""
    for name in (
        'CONSOLE_CONFIG',
        'CONSOLE_API_BASE_URL',
        'CONSOLE_API_TOKEN',
        'CONSOLE_LOG_LEVEL',
        'CONSOLE_EVENTS_ENDPOINT',
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
