"""
Tests for the content catalog adapter.
"""

import pytest

from src.console import ConsoleClientError
from src.console.catalog import ContentCatalog, merge_advertisements, video_name_of
from src.console.models import Advertisement


class TestVideoNames:
    """Tests for video catalog normalization."""

    @pytest.mark.parametrize("item,expected", [
        ('a.mp4', 'a.mp4'),
        ({'video_name': 'b.mp4'}, 'b.mp4'),
        ({'name': 'c.mp4'}, 'c.mp4'),
        ({'id': 3}, ''),
        (None, ''),
    ])
    def test_video_name_of(self, item, expected):
        assert video_name_of(item) == expected

    def test_video_names_deduplicated(self, client):
        client.list_videos.return_value = ['a.mp4', {'video_name': 'a.mp4'}, {'name': 'b.mp4'}, {}]
        assert ContentCatalog(client).video_names() == ['a.mp4', 'b.mp4']

    def test_video_catalog_failure_propagates(self, client):
        client.list_videos.side_effect = ConsoleClientError("boom")
        with pytest.raises(ConsoleClientError):
            ContentCatalog(client).video_names()


class TestAdvertisements:
    """Tests for advertisement catalogs."""

    def test_merge_first_wins(self):
        merged = merge_advertisements(
            [Advertisement('x.png', 90)],
            [Advertisement('x.png', 180), Advertisement('y.png')],
        )
        assert merged == [Advertisement('x.png', 90), Advertisement('y.png')]

    def test_advertisements(self, client):
        client.list_advertisements.return_value = ['x.png', {'ad_name': 'y.png', 'rotation': '90'}, {}]
        assert ContentCatalog(client).advertisements() == [Advertisement('x.png'), Advertisement('y.png', 90)]

    def test_group_advertisements_failure_is_empty(self, client):
        client.get_group_advertisements.side_effect = ConsoleClientError("boom")
        assert ContentCatalog(client).group_advertisements('Lobby') == []

    def test_no_group_no_request(self, client):
        assert ContentCatalog(client).group_advertisements('') == []
        client.get_group_advertisements.assert_not_called()

    def test_group_video_names(self, client):
        client.get_group_videos.return_value = ['a.mp4']
        assert ContentCatalog(client).group_video_names('Lobby') == ['a.mp4']

        client.get_group_videos.side_effect = ConsoleClientError("boom")
        assert ContentCatalog(client).group_video_names('Lobby') == []
