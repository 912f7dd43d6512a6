"""Thin accessors for bridge resources."""

from typing import TYPE_CHECKING, Any, Optional

from loguru import logger

from .color import hex_to_xy, kelvin_to_mired
from .models import Group, LightState

if TYPE_CHECKING:
    from .pipeline import RequestPipeline

ALERTS = ("none", "select", "lselect")
EFFECTS = ("none", "colorloop")


def _clamp(value, low, high):
    return max(low, min(high, value))


def build_state_command(
    on: Optional[bool] = None,
    brightness: Optional[int] = None,
    hue: Optional[int] = None,
    saturation: Optional[int] = None,
    color_temp: Optional[int] = None,
    transition_time: Optional[int] = None,
    alert: Optional[str] = None,
    effect: Optional[str] = None,
    xy: Optional[tuple[float, float]] = None,
    scene: Optional[str] = None,
) -> dict:
    """
    Build a light/group state payload, clamping values to bridge ranges.

    Args:
        on: Turn on/off
        brightness: Brightness level (0-254)
        hue: Color hue (0-65535)
        saturation: Color saturation (0-254)
        color_temp: Color temperature in mirek (153-500)
        transition_time: Fade time in 1/10 seconds
        alert: Alert effect ("none", "select", "lselect")
        effect: Light effect ("none", "colorloop")
        xy: CIE color coordinates (x, y)
        scene: Scene ID to recall (groups only)

    Returns:
        The payload; unknown alert/effect values are dropped.
    """
    command = {}
    if on is not None:
        command["on"] = on
    if brightness is not None:
        command["bri"] = _clamp(brightness, 0, 254)
    if hue is not None:
        command["hue"] = _clamp(hue, 0, 65535)
    if saturation is not None:
        command["sat"] = _clamp(saturation, 0, 254)
    if color_temp is not None:
        command["ct"] = _clamp(color_temp, 153, 500)
    if transition_time is not None:
        command["transitiontime"] = _clamp(transition_time, 0, 65535)
    if alert is not None:
        if alert in ALERTS:
            command["alert"] = alert
        else:
            logger.warning(f"Ignoring unknown alert: {alert}")
    if effect is not None:
        if effect in EFFECTS:
            command["effect"] = effect
        else:
            logger.warning(f"Ignoring unknown effect: {effect}")
    if xy is not None and len(xy) == 2:
        command["xy"] = [_clamp(xy[0], 0.0, 1.0), _clamp(xy[1], 0.0, 1.0)]
    if scene is not None:
        command["scene"] = scene
    return command


class ResourceAccessor:
    """Base class: a resource collection under ``/api/<token>/<path>``."""

    path = ""

    def __init__(self, pipeline: "RequestPipeline"):
        self.pipeline = pipeline

    def get_raw(self) -> dict:
        return self.pipeline.send("GET", self.path) or {}

    def get(self, resource_id: str) -> dict:
        return self.pipeline.send("GET", f"{self.path}/{resource_id}")

    def delete(self, resource_id: str) -> Any:
        return self.pipeline.send("DELETE", f"{self.path}/{resource_id}")

    def get_all(self) -> dict:
        return self.get_raw()


class Lights(ResourceAccessor):
    path = "lights"

    def get_all(self) -> dict[str, LightState]:
        """Get current state of all lights, keyed by light id."""
        return {
            str(light_id): LightState.from_hue_api(str(light_id), data)
            for light_id, data in self.get_raw().items()
        }

    def get_state(self, light_id: str) -> LightState:
        return LightState.from_hue_api(str(light_id), self.get(light_id))

    def set_state(self, light_id: str, **fields) -> Any:
        """Send a state command; see ``build_state_command`` for fields."""
        command = build_state_command(**fields)
        if not command:
            logger.debug(f"Nothing to set for light {light_id}")
            return []
        result = self.pipeline.send("PUT", f"lights/{light_id}/state", command)
        logger.debug(f"Set light {light_id}: {command}")
        return result

    def set_color(self, light_id: str, hex_color: str, **fields) -> Any:
        return self.set_state(light_id, xy=hex_to_xy(hex_color), **fields)

    def set_color_temperature(self, light_id: str, kelvin: int, **fields) -> Any:
        return self.set_state(light_id, color_temp=kelvin_to_mired(kelvin), **fields)

    def rename(self, light_id: str, name: str) -> Any:
        return self.pipeline.send("PUT", f"lights/{light_id}", {"name": name})


class Groups(ResourceAccessor):
    path = "groups"

    def get_all(self) -> dict[str, Group]:
        return {
            str(group_id): Group.from_hue_api(str(group_id), data)
            for group_id, data in self.get_raw().items()
        }

    def rooms(self) -> dict[str, Group]:
        return {gid: group for gid, group in self.get_all().items() if group.is_room}

    def set_action(self, group_id: str, **fields) -> Any:
        """Send an action to every light in a group (group "0" is all lights)."""
        command = build_state_command(**fields)
        if not command:
            logger.debug(f"Nothing to set for group {group_id}")
            return []
        result = self.pipeline.send("PUT", f"groups/{group_id}/action", command)
        logger.debug(f"Set group {group_id}: {command}")
        return result

    def create(self, name: str, light_ids: list[str], group_type: str = "LightGroup") -> Any:
        return self.pipeline.send(
            "POST",
            self.path,
            {"name": name, "lights": [str(i) for i in light_ids], "type": group_type},
        )


class Scenes(ResourceAccessor):
    path = "scenes"

    def activate(self, scene_id: str, group_id: str = "0") -> Any:
        return self.pipeline.send("PUT", f"groups/{group_id}/action", {"scene": scene_id})


class Schedules(ResourceAccessor):
    path = "schedules"

    def create(self, name: str, command: dict, localtime: str, **extra) -> Any:
        """
        Create a schedule.

        Args:
            name: Schedule name
            command: Bridge command ({"address", "method", "body"})
            localtime: Bridge time pattern, e.g. "W127/T07:00:00"
        """
        payload = {"name": name, "command": command, "localtime": localtime, **extra}
        return self.pipeline.send("POST", self.path, payload)


class Sensors(ResourceAccessor):
    path = "sensors"
