"""
Content, slot and link record types shared by the console engines.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

VALID_ROTATIONS = (0, 90, 180, 270)


def normalize_rotation(value: Any) -> Optional[int]:
    """
    Coerce a stored rotation into a valid rotation or None.

    Accepts ints, integral floats and numeric strings. Anything that is not
    one of 0/90/180/270 is treated as unset.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not number.is_integer():
        return None
    rotation = int(number)
    return rotation if rotation in VALID_ROTATIONS else None


def parse_int(value: Any) -> Optional[int]:
    """Parse an optional integer field, None when missing or garbage."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None


def parse_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() not in ("0", "false", "no", "off", "")
    return bool(value)


class ContentKind(Enum):
    """Kind of content a slot can hold."""
    VIDEO = "video"
    IMAGE = "image"


@dataclass(frozen=True)
class ContentRef:
    """A video or an advertisement image, identified by (kind, name)."""
    kind: ContentKind
    name: str

    @classmethod
    def video(cls, video_name: str) -> "ContentRef":
        return cls(ContentKind.VIDEO, video_name)

    @classmethod
    def image(cls, ad_name: str) -> "ContentRef":
        return cls(ContentKind.IMAGE, ad_name)

    @property
    def is_video(self) -> bool:
        return self.kind is ContentKind.VIDEO

    @property
    def is_image(self) -> bool:
        return self.kind is ContentKind.IMAGE

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.name}"


@dataclass
class Slot:
    """One position of a layout and what it currently shows."""
    position: int
    content: Optional[ContentRef] = None
    rotation: Optional[int] = None
    link_id: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.content is None


@dataclass(frozen=True)
class LinkRecord:
    """
    Association of one video with one device, as stored by the link store.

    Device-level fields (name, temperature, counters, active flag) are
    repeated on every record of a device.
    """
    id: Optional[int]
    mobile_id: str
    gname: str = ""
    shop_name: str = ""
    video_name: str = ""
    rotation: Optional[int] = None
    device_rotation: Optional[int] = None
    grid_position: Optional[int] = None
    device_name: str = ""
    temperature: Optional[float] = None
    daily_count: int = 0
    monthly_count: int = 0
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LinkRecord":
        """
        Build a record from a link store row.

        Args:
            data: Row as returned by GET /links

        Returns:
            LinkRecord with rotations normalized and counters defaulted
        """
        return cls(
            id=parse_int(data.get('id')),
            mobile_id=str(data.get('mobile_id') or ""),
            gname=str(data.get('gname') or ""),
            shop_name=str(data.get('shop_name') or ""),
            video_name=str(data.get('video_name') or ""),
            rotation=normalize_rotation(data.get('rotation')),
            device_rotation=normalize_rotation(data.get('device_rotation')),
            grid_position=parse_int(data.get('grid_position')),
            device_name=str(data.get('device_name') or ""),
            temperature=parse_float(data.get('temperature')),
            daily_count=parse_int(data.get('daily_count')) or 0,
            monthly_count=parse_int(data.get('monthly_count')) or 0,
            is_active=parse_bool(data.get('is_active'), default=True),
        )

    @property
    def effective_rotation(self) -> Optional[int]:
        """Device-level override wins over the video's own rotation."""
        if self.device_rotation is not None:
            return self.device_rotation
        return self.rotation

    @property
    def sort_position(self) -> int:
        """Missing grid positions sort as 0."""
        return self.grid_position if self.grid_position is not None else 0

    @property
    def device_key(self):
        return (self.mobile_id, self.gname, self.shop_name)


@dataclass(frozen=True)
class Advertisement:
    """An image from the advertisement catalog."""
    ad_name: str
    rotation: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Advertisement"]:
        """Accept a bare name or a catalog row; None when there is no name."""
        if isinstance(data, str):
            return cls(data) if data else None
        if not isinstance(data, dict):
            return None
        name = data.get('ad_name') or data.get('name')
        if not name:
            return None
        return cls(str(name), normalize_rotation(data.get('rotation')))
