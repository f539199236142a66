"""
Parsing of per-device telemetry: online flag, download progress and the
download URLs a device plays.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from src.common.logger import setup_logger
from src.console import ConsoleNotFoundError
from src.console.models import parse_float, parse_int

logger = setup_logger(__name__)

_TRUE_STRINGS = ("true", "1", "online")
_FALSE_STRINGS = ("false", "0", "offline")


def _flag(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    return None


def extract_online_flag(body: Any) -> bool:
    """
    Read an online flag from whatever shape the status endpoint returned.

    Looks at online, is_online, isOnline and status (also under a nested
    "data" object), then at the body itself. Booleans, 1/0 and the strings
    true/false/online/offline are understood. Anything else is offline.
    """
    payload = body.get('data', body) if isinstance(body, dict) else body

    candidates = []
    for source in (body, payload):
        if isinstance(source, dict):
            candidates.extend(source.get(key) for key in ('online', 'is_online', 'isOnline', 'status'))
    candidates.append(payload)

    for value in candidates:
        flag = _flag(value)
        if flag is not None:
            return flag
    return False


def format_bytes(size: Optional[float]) -> str:
    """Human readable byte count (B, KB, MB, GB)."""
    if not size:
        return "0 B"
    if size < 1024:
        return f"{int(size)} B"
    if size < 1024 ** 2:
        return f"{size / 1024:.1f} KB"
    if size < 1024 ** 3:
        return f"{size / 1024 ** 2:.1f} MB"
    return f"{size / 1024 ** 3:.2f} GB"


@dataclass(frozen=True)
class DownloadProgress:
    """A device's content download state."""
    mobile_id: str
    is_downloading: bool = False
    current_file: int = 0
    total_files: int = 0
    file_name: str = ""
    progress: float = 0.0
    downloaded_bytes: int = 0
    total_bytes: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> Optional["DownloadProgress"]:
        """Parse a download_progress body; None when it names no device."""
        if not isinstance(data, dict) or not data.get('mobile_id'):
            return None
        return cls(
            mobile_id=str(data['mobile_id']),
            is_downloading=bool(data.get('is_downloading')),
            current_file=parse_int(data.get('current_file')) or 0,
            total_files=parse_int(data.get('total_files')) or 0,
            file_name=str(data.get('file_name') or ""),
            progress=parse_float(data.get('progress')) or 0.0,
            downloaded_bytes=parse_int(data.get('downloaded_bytes')) or 0,
            total_bytes=parse_int(data.get('total_bytes')) or 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'mobile_id': self.mobile_id,
            'is_downloading': self.is_downloading,
            'current_file': self.current_file,
            'total_files': self.total_files,
            'file_name': self.file_name,
            'progress': self.progress,
            'downloaded_bytes': self.downloaded_bytes,
            'total_bytes': self.total_bytes,
        }

    def describe(self) -> str:
        """One-line status such as 'file 2/5 a.mp4 40% (1.0 MB / 2.5 MB)'."""
        if not self.is_downloading:
            return "idle"
        return (
            f"file {self.current_file}/{self.total_files} {self.file_name} "
            f"{self.progress:.0f}% ({format_bytes(self.downloaded_bytes)} / {format_bytes(self.total_bytes)})"
        )


@dataclass(frozen=True)
class PlaybackItem:
    """One downloadable video of a device."""
    url: str
    video_name: str = ""
    grid_position: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> Optional["PlaybackItem"]:
        if not isinstance(data, dict) or not data.get('url'):
            return None
        return cls(
            url=str(data['url']),
            video_name=str(data.get('video_name') or ""),
            grid_position=parse_int(data.get('grid_position')) or 0,
        )


@dataclass(frozen=True)
class DevicePlayback:
    """
    What a device plays right now, as download URLs.

    Items are ordered by grid position, missing positions first as 0.
    """
    mobile_id: str
    layout_mode: str = "single"
    items: Tuple[PlaybackItem, ...] = ()

    @classmethod
    def from_dict(cls, mobile_id: str, data: Any) -> "DevicePlayback":
        body = data if isinstance(data, dict) else {}
        raw_items = body.get('items') if isinstance(body.get('items'), list) else []
        items = [item for item in (PlaybackItem.from_dict(raw) for raw in raw_items) if item is not None]
        items.sort(key=lambda item: item.grid_position)
        return cls(
            mobile_id=mobile_id,
            layout_mode=str(body.get('layout_mode') or "single"),
            items=tuple(items),
        )

    @property
    def urls(self) -> List[str]:
        return [item.url for item in self.items]

    @property
    def is_empty(self) -> bool:
        return not self.items


def load_device_playback(client: Any, mobile_id: str, regenerate: bool = False) -> DevicePlayback:
    """
    Fetch a device's playable video URLs.

    Args:
        client: ConsoleAPIClient
        mobile_id: Device to load
        regenerate: Ask the collaborator for fresh URLs instead of the stored ones

    Returns:
        DevicePlayback; empty when the device has no downloadable videos

    Raises:
        ConsoleClientError: For any failure other than a 404
    """
    try:
        if regenerate:
            data = client.refresh_video_downloads(mobile_id)
        else:
            data = client.get_video_downloads(mobile_id)
    except ConsoleNotFoundError:
        logger.debug("No downloadable videos for %s", mobile_id)
        return DevicePlayback(mobile_id)

    playback = DevicePlayback.from_dict(mobile_id, data)
    logger.debug("Loaded %d video URL(s) for %s (%s)", len(playback.items), mobile_id, playback.layout_mode)
    return playback
