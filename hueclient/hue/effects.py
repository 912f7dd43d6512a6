"""Timed lighting effects driven through the light and group accessors."""

import time
from typing import TYPE_CHECKING, Any, Callable, Optional, Sequence

from loguru import logger

from .color import hex_to_xy

if TYPE_CHECKING:
    from .pipeline import RequestPipeline

# Full breathing cycle in seconds
BREATHING_SPEEDS = {"slow": 3.0, "medium": 2.0, "fast": 1.0}

BREATHING_HIGH = 254
BREATHING_LOW = 10


def _tenths(seconds: float) -> int:
    """Seconds as a bridge transition time (1/10 s)."""
    return int(round(seconds * 10))


class Effect:
    """
    Base class for effects played on one light or one group.

    Effects block while they run. ``stop()`` may be called from another
    thread; the running loop notices it before its next state change.
    """

    def __init__(
        self,
        pipeline: "RequestPipeline",
        light_id: Optional[str] = None,
        group_id: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the effect.

        Args:
            pipeline: Pipeline of the bridge that owns the target.
            light_id: Target light (exclusive with group_id).
            group_id: Target group (exclusive with light_id).
            sleep: Blocking wait function (injectable for tests).
            clock: Monotonic clock used for effect durations.
        """
        if (light_id is None) == (group_id is None):
            raise ValueError("Exactly one of light_id or group_id is required")

        self.pipeline = pipeline
        self.light_id = light_id
        self.group_id = group_id
        self._sleep = sleep
        self._clock = clock
        self.running = False

    @property
    def target(self) -> str:
        if self.light_id is not None:
            return f"light {self.light_id}"
        return f"group {self.group_id}"

    def is_running(self) -> bool:
        return self.running

    def stop(self):
        self.running = False

    def apply(self, **fields) -> Any:
        """Send state fields (see ``build_state_command``) to the target."""
        if self.light_id is not None:
            return self.pipeline.lights.set_state(self.light_id, **fields)
        return self.pipeline.groups.set_action(self.group_id, **fields)

    def wait(self, seconds: float):
        if self.running:
            self._sleep(seconds)


class Alert(Effect):
    """Bridge alert cycles ("select" is one blink, "lselect" blinks for 15 s)."""

    def start(self, mode: str = "select") -> Any:
        return self.apply(alert=mode)

    def flash(self, times: int = 1, interval: float = 1.0):
        """Blink ``times`` times, ``interval`` seconds apart."""
        self.running = True
        try:
            for _ in range(times):
                if not self.running:
                    break
                self.apply(alert="select")
                self.wait(interval)
        finally:
            self.running = False

    def long_alert(self) -> Any:
        return self.apply(alert="lselect")

    def stop(self):
        super().stop()
        self.apply(alert="none")


class Breathing(Effect):
    """Fade between full and dim brightness in one colour."""

    def start(self, color: str = "#FFFFFF", speed: str = "medium", duration: float = 30):
        """
        Breathe for ``duration`` seconds.

        Args:
            color: Hex colour.
            speed: "slow", "medium" or "fast".
            duration: Total run time in seconds.
        """
        if speed not in BREATHING_SPEEDS:
            logger.warning(f"Unknown breathing speed {speed!r}, using medium")
        half_cycle = BREATHING_SPEEDS.get(speed, BREATHING_SPEEDS["medium"]) / 2
        transition = _tenths(half_cycle)
        xy = hex_to_xy(color)

        logger.debug(f"Breathing {color} on {self.target} for {duration}s")
        self.running = True
        end = self._clock() + duration
        try:
            while self.running and self._clock() < end:
                self.apply(on=True, brightness=BREATHING_HIGH, xy=xy, transition_time=transition)
                self.wait(half_cycle)
                if not self.running:
                    break
                self.apply(brightness=BREATHING_LOW, transition_time=transition)
                self.wait(half_cycle)
        finally:
            self.running = False


class ColorLoop(Effect):
    """Cycle through colours, either on the bridge or step by step."""

    def start(self, duration: float = 30):
        """Run the bridge's built-in colour loop for ``duration`` seconds."""
        self.running = True
        try:
            self.apply(on=True, effect="colorloop")
            self.wait(duration)
            if self.running:
                self.apply(effect="none")
        finally:
            self.running = False

    def start_custom(self, colors: Sequence[str], step_duration: float = 1.0, cycles: int = 1):
        """
        Step through hex ``colors``, fading into each over ``step_duration``.

        Args:
            colors: Hex colours in order.
            step_duration: Seconds per colour.
            cycles: Passes through the list.
        """
        points = [hex_to_xy(color) for color in colors]
        transition = _tenths(step_duration)

        self.running = True
        try:
            for _ in range(cycles):
                for xy in points:
                    if not self.running:
                        return
                    self.apply(on=True, xy=xy, transition_time=transition)
                    self.wait(step_duration)
        finally:
            self.running = False
