"""Data models for bridge resources and multi-bridge bookkeeping."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from .config import PipelineConfig

if TYPE_CHECKING:
    from .pipeline import RequestPipeline

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"


@dataclass
class LightState:
    """Represents the current state of a Hue light."""

    light_id: str
    name: str
    is_on: bool
    brightness: int  # 0-254
    hue: Optional[int] = None  # 0-65535
    saturation: Optional[int] = None  # 0-254
    color_temp: Optional[int] = None  # 153-500 mirek
    xy: Optional[tuple[float, float]] = None
    color_mode: Optional[str] = None
    reachable: bool = True

    @property
    def brightness_percent(self) -> float:
        """Get brightness as percentage (0-100)."""
        return round((self.brightness / 254) * 100, 1)

    def to_dict(self) -> dict:
        return {
            "light_id": self.light_id,
            "name": self.name,
            "is_on": self.is_on,
            "brightness": self.brightness,
            "hue": self.hue,
            "saturation": self.saturation,
            "color_temp": self.color_temp,
            "xy": list(self.xy) if self.xy else None,
            "color_mode": self.color_mode,
            "reachable": self.reachable,
        }

    @classmethod
    def from_hue_api(cls, light_id: str, data: dict) -> "LightState":
        """Create LightState from Hue API response."""
        state = data.get("state", {})
        xy = state.get("xy")
        return cls(
            light_id=light_id,
            name=data.get("name", f"Light {light_id}"),
            is_on=state.get("on", False),
            brightness=state.get("bri", 0),
            hue=state.get("hue"),
            saturation=state.get("sat"),
            color_temp=state.get("ct"),
            xy=tuple(xy) if xy else None,
            color_mode=state.get("colormode"),
            reachable=state.get("reachable", True),
        )


@dataclass
class Group:
    """Represents a Hue group (room, zone, light group)."""

    group_id: str
    name: str
    group_type: str = "LightGroup"
    light_ids: list[str] = field(default_factory=list)
    any_on: bool = False
    all_on: bool = False

    @property
    def is_room(self) -> bool:
        return self.group_type == "Room"

    @classmethod
    def from_hue_api(cls, group_id: str, data: dict) -> "Group":
        """Create Group from Hue API response."""
        state = data.get("state", {})
        return cls(
            group_id=group_id,
            name=data.get("name", f"Group {group_id}"),
            group_type=data.get("type", "LightGroup"),
            light_ids=[str(i) for i in data.get("lights", [])],
            any_on=state.get("any_on", False),
            all_on=state.get("all_on", False),
        )


@dataclass
class BridgeEndpoint:
    """A bridge address with its auth token and connection settings."""

    address: str
    token: Optional[str] = None
    config: PipelineConfig = field(default_factory=PipelineConfig)


@dataclass
class HealthReport:
    """Outcome of one health probe."""

    status: str  # "healthy" or "unhealthy"
    checked_at: datetime = field(default_factory=datetime.now)
    latency: Optional[float] = None  # seconds
    error: Optional[str] = None

    @property
    def is_healthy(self) -> bool:
        return self.status == HEALTHY

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "latency": self.latency,
            "error": self.error,
            "last_check": self.checked_at.isoformat(),
        }


@dataclass
class BroadcastResult:
    """Outcome of a broadcast action on one bridge."""

    ok: bool
    result: Any = None
    error: Optional[BaseException] = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class PoolEntry:
    """A bridge known to the pool; the pipeline is created on first use."""

    endpoint: BridgeEndpoint
    pipeline: Optional["RequestPipeline"] = None
    last_health: Optional[HealthReport] = None
