"""
Content catalog adapter.

Normalizes the collaborator's video and advertisement catalogs, which come
back as bare names or as rows under varying keys.
"""

from typing import Any, Iterable, List

from src.common.logger import setup_logger
from src.console import ConsoleClientError
from src.console.models import Advertisement

logger = setup_logger(__name__)


def video_name_of(item: Any) -> str:
    """Name of a video catalog item ('' when it has none)."""
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        return str(item.get('video_name') or item.get('name') or "")
    return ""


def merge_advertisements(*sources: Iterable[Advertisement]) -> List[Advertisement]:
    """Concatenate advertisement lists, keeping the first of each ad_name."""
    merged: List[Advertisement] = []
    seen = set()
    for source in sources:
        for ad in source:
            if ad.ad_name in seen:
                continue
            seen.add(ad.ad_name)
            merged.append(ad)
    return merged


class ContentCatalog:
    """Reads video and image catalogs through the console API client."""

    def __init__(self, client):
        self.client = client

    def video_names(self) -> List[str]:
        """
        All video names in the catalog, de-duplicated in catalog order.

        Raises:
            ConsoleClientError: If the catalog cannot be fetched
        """
        names: List[str] = []
        for item in self.client.list_videos():
            name = video_name_of(item)
            if name and name not in names:
                names.append(name)
        return names

    def advertisements(self) -> List[Advertisement]:
        """
        All advertisements in the catalog.

        Raises:
            ConsoleClientError: If the catalog cannot be fetched
        """
        ads = (Advertisement.from_dict(item) for item in self.client.list_advertisements())
        return merge_advertisements([ad for ad in ads if ad is not None])

    def group_advertisements(self, group_name: str) -> List[Advertisement]:
        """Advertisements of a group; empty when the group has none or the call fails."""
        if not group_name:
            return []
        try:
            items = self.client.get_group_advertisements(group_name)
        except ConsoleClientError as e:
            logger.warning("Could not load advertisements for group %s: %s", group_name, e)
            return []
        ads = (Advertisement.from_dict(item) for item in items)
        return merge_advertisements([ad for ad in ads if ad is not None])

    def group_video_names(self, group_name: str) -> List[str]:
        """Video names of a group; empty when the call fails."""
        if not group_name:
            return []
        try:
            return self.client.get_group_videos(group_name)
        except ConsoleClientError as e:
            logger.warning("Could not load videos for group %s: %s", group_name, e)
            return []
