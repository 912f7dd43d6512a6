"""Hue Bridge communication module."""

from hueclient.errors import (
    AuthenticationError,
    CacheError,
    HueError,
    LinkButtonPendingError,
    ProtocolError,
    ServerBusyError,
    TransportError,
)
from .color import hex_to_xy, kelvin_to_mired, rgb_to_xy
from .config import PipelineConfig
from .effects import Alert, Breathing, ColorLoop
from .models import BridgeEndpoint, BroadcastResult, Group, HealthReport, LightState
from .pipeline import RequestPipeline
from .pool import BridgePool
from .retry import RetryDecision, RetryPolicy, classify

__all__ = [
    "Alert",
    "AuthenticationError",
    "BridgeEndpoint",
    "Breathing",
    "BridgePool",
    "BroadcastResult",
    "CacheError",
    "ColorLoop",
    "Group",
    "HealthReport",
    "HueError",
    "LightState",
    "LinkButtonPendingError",
    "PipelineConfig",
    "ProtocolError",
    "RequestPipeline",
    "RetryDecision",
    "RetryPolicy",
    "ServerBusyError",
    "TransportError",
    "classify",
    "hex_to_xy",
    "kelvin_to_mired",
    "rgb_to_xy",
]
