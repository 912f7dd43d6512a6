"""Request pipeline for one Hue Bridge: auth, caching and retries."""

import json
import socket
import time
from dataclasses import asdict
from typing import Any, Optional, Union

import requests
import urllib3
from loguru import logger

from hueclient.errors import (
    AuthenticationError,
    HueError,
    ProtocolError,
    ServerBusyError,
    TransportError,
    error_from_envelope,
)
from hueclient.storage.backends import create_backend
from hueclient.storage.cache import ResponseCache
from .config import PipelineConfig
from .models import BridgeEndpoint
from .resources import Groups, Lights, Scenes, Schedules, Sensors
from .retry import RETRYABLE_STATUS_CODES, RetryPolicy

# Resource type used for the full-state root (GET /api/<token>)
FULL_STATE = "state"

# Writes to a group change the state of its lights too
_WRITE_SIDE_EFFECTS = {"groups": ("lights",), "scenes": ("groups", "lights")}


def mask_token(token: Optional[str]) -> Optional[str]:
    """Shorten a token for logs."""
    return f"{token[:8]}..." if token else None


def resource_type_for(path: str) -> str:
    """Cache scope for a resource path: its first segment."""
    first = path.strip("/").split("/", 1)[0]
    return first or FULL_STATE


class RequestPipeline:
    """
    Executes logical bridge operations over HTTPS.

    GET requests are read through the response cache; every wire call runs
    under the retry policy. Calls block until they finish, retries included.
    """

    def __init__(
        self,
        endpoint: Union[BridgeEndpoint, str],
        token: Optional[str] = None,
        config: Optional[PipelineConfig] = None,
        *,
        session: Optional[requests.Session] = None,
        cache: Optional[ResponseCache] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """
        Initialize the pipeline.

        Args:
            endpoint: BridgeEndpoint, or a bridge address.
            token: Auth token when ``endpoint`` is an address.
            config: Settings when ``endpoint`` is an address.
            session: HTTP session to use (one is created if omitted).
            cache: Response cache to share; built from config if omitted.
            retry_policy: Retry policy; built from config if omitted.
        """
        if isinstance(endpoint, str):
            endpoint = BridgeEndpoint(endpoint, token, config or PipelineConfig())

        self.endpoint = endpoint
        self.config = endpoint.config
        self.address = endpoint.address
        self.base_url = f"https://{self.address}/api"

        self._owns_session = session is None
        self.session = session if session is not None else requests.Session()
        self.session.verify = self.config.verify_tls
        if not self.config.verify_tls:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=self.config.retry_attempts,
            delays=self.config.retry_delays,
        )

        self._owns_cache = False
        self.cache: Optional[ResponseCache] = None
        if self.config.cache_enabled:
            if cache is None:
                cache = ResponseCache(create_backend(self.config))
                self._owns_cache = True
            self.cache = cache

        self.lights = Lights(self)
        self.groups = Groups(self)
        self.scenes = Scenes(self)
        self.schedules = Schedules(self)
        self.sensors = Sensors(self)

    def __repr__(self):
        state = "registered" if self.is_registered else "unregistered"
        return f"<RequestPipeline {self.address} ({state})>"

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    @property
    def token(self) -> Optional[str]:
        return self.endpoint.token

    @property
    def is_registered(self) -> bool:
        return bool(self.endpoint.token)

    def set_token(self, token: str):
        """Use a token obtained earlier (e.g. loaded from config)."""
        if not token:
            raise ValueError("token must be a non-empty string")
        self.endpoint.token = token

    def register(self, app_name: str, device_name: Optional[str] = None) -> str:
        """
        Create an application user on the bridge.

        The link button must have been pressed shortly before. The stored
        token is only replaced once the bridge has issued a new one.

        Args:
            app_name: Application name.
            device_name: Device name (defaults to this host's name).

        Returns:
            The new auth token.

        Raises:
            LinkButtonPendingError: The link button was not pressed. Not
                retried; prompt the user and call register again.
            ProtocolError: The bridge refused or answered unexpectedly.
        """
        device_name = device_name or socket.gethostname()
        payload = {"devicetype": f"{app_name}#{device_name}"}

        logger.info(f"Registering {payload['devicetype']} with bridge {self.address}")
        data = self.retry_policy.execute(
            lambda: self._request("POST", self.base_url, "/api", payload),
            f"register {self.address}",
        )

        token = None
        if isinstance(data, list):
            for item in data:
                if isinstance(item, dict) and "success" in item:
                    token = item["success"].get("username")
                    break

        if not token:
            raise ProtocolError("Unexpected response from bridge", self.address)

        self.endpoint.token = token
        logger.success(f"Registered with Hue Bridge {self.address} as {mask_token(token)}")
        return token

    def send(self, method: str, path: str = "", body: Optional[Any] = None) -> Any:
        """
        Execute one logical request against ``/api/<token>/<path>``.

        Args:
            method: HTTP method.
            path: Resource path, e.g. "lights/1/state".
            body: JSON body for PUT/POST.

        Returns:
            The parsed JSON payload.

        Raises:
            AuthenticationError: No token, or the bridge rejected it.
            ProtocolError: The bridge reported an error for this request.
            TransportError, ServerBusyError: Still failing after all retries.
        """
        if not self.is_registered:
            raise AuthenticationError(
                "No auth token set. Register with the bridge first.", self.address
            )

        method = method.upper()
        path = path.strip("/")
        url = f"{self.base_url}/{self.token}/{path}" if path else f"{self.base_url}/{self.token}"
        display = f"/{path}"

        def wire_call():
            return self.retry_policy.execute(
                lambda: self._request(method, url, display, body),
                f"HTTP {method} {display}",
            )

        if method == "GET" and self.cache is not None:
            return self.cache.get(
                resource_type_for(path),
                self._cache_key(method, path, body),
                wire_call,
            )

        if method == "GET":
            return wire_call()

        try:
            data = wire_call()
        except ProtocolError:
            # The bridge answered; part of the write may have been applied
            self._invalidate_after_write(path)
            raise
        self._invalidate_after_write(path)
        return data

    def get(self, path: str = "") -> Any:
        return self.send("GET", path)

    def put(self, path: str, body: Any) -> Any:
        return self.send("PUT", path, body)

    def post(self, path: str, body: Any) -> Any:
        return self.send("POST", path, body)

    def delete(self, path: str) -> Any:
        return self.send("DELETE", path)

    def get_config(self) -> dict:
        return self.send("GET", "config")

    def get_full_state(self) -> dict:
        return self.send("GET", "")

    def is_connected(self) -> bool:
        """Check if the bridge answers a config request."""
        try:
            self.get_config()
            return True
        except HueError as e:
            logger.debug(f"Bridge {self.address} not connected: {e}")
            return False

    def probe(self, timeout: Optional[float] = None) -> float:
        """
        Fetch the config once, bypassing cache and retries.

        Args:
            timeout: Request timeout (defaults to the configured one).

        Returns:
            Round-trip time in seconds.
        """
        if self.is_registered:
            url = f"{self.base_url}/{self.token}/config"
        else:
            url = f"{self.base_url}/config"

        started = time.perf_counter()
        self._request("GET", url, "/config", None, timeout=timeout)
        return time.perf_counter() - started

    def clear_cache(self) -> bool:
        if self.cache is None:
            return False
        return self.cache.clear()

    def capabilities(self) -> dict:
        """Summarize what the bridge can hold; empty if unavailable."""
        try:
            caps = self.send("GET", "capabilities")
        except HueError as e:
            logger.error(f"Failed to get capabilities from {self.address}: {e}")
            return {}

        def available(name: str) -> int:
            return caps.get(name, {}).get("available", 0)

        return {
            "lights_available": available("lights"),
            "groups_available": available("groups"),
            "scenes_available": available("scenes"),
            "schedules_available": available("schedules"),
            "sensors_available": available("sensors"),
            "streaming_capable": "streaming" in caps,
        }

    def resource_counts(self) -> dict:
        """Count resources of each type; empty if the bridge is unavailable."""
        try:
            return {
                "lights": len(self.lights.get_all()),
                "groups": len(self.groups.get_all()),
                "scenes": len(self.scenes.get_all()),
                "schedules": len(self.schedules.get_all()),
                "sensors": len(self.sensors.get_all()),
            }
        except HueError as e:
            logger.error(f"Failed to count resources on {self.address}: {e}")
            return {}

    def connection_info(self) -> dict:
        """Describe this connection without exposing the token."""
        return {
            "bridge_ip": self.address,
            "username": mask_token(self.token),
            "registered": self.is_registered,
            "cache_enabled": self.cache is not None,
            "cache": self.cache.stats() if self.cache is not None else None,
            "retry": self.retry_policy.statistics(),
            "config": asdict(self.config),
        }

    def close(self):
        if self._owns_session:
            self.session.close()
        if self._owns_cache and self.cache is not None:
            self.cache.close()

    def _cache_key(self, method: str, path: str, body: Any) -> str:
        serialized = json.dumps(body, sort_keys=True) if body is not None else ""
        return f"{self.address}|{self.token}|{method}|{path}|{serialized}"

    def _invalidate_after_write(self, path: str):
        if self.cache is None:
            return
        written = resource_type_for(path)
        for resource_type in (written, *_WRITE_SIDE_EFFECTS.get(written, ()), FULL_STATE):
            self.cache.invalidate(resource_type)

    def _request(
        self,
        method: str,
        url: str,
        display: str,
        body: Optional[Any] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """Perform one HTTP exchange and map failures to HueError types."""
        logger.debug(f"{method} {self.address}{display} {body if body is not None else ''}")
        try:
            response = self.session.request(
                method,
                url,
                json=body,
                timeout=timeout or self.config.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransportError(
                f"{method} {display} failed: {e}", self.address, cause=e
            ) from e
        except requests.RequestException as e:
            raise HueError(f"{method} {display} failed: {e}", self.address) from e

        status = response.status_code
        if status >= 500 or status in RETRYABLE_STATUS_CODES:
            raise ServerBusyError(status, self.address)
        if status in (401, 403):
            raise AuthenticationError(
                f"Bridge rejected {method} {display} with HTTP {status}", self.address
            )
        if status >= 400:
            raise ProtocolError(
                f"{method} {display} returned HTTP {status}",
                self.address,
                status_code=status,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProtocolError(
                f"Bridge returned invalid JSON for {method} {display}", self.address
            ) from e

        if isinstance(data, list):
            for item in data:
                if isinstance(item, dict) and "error" in item:
                    raise error_from_envelope(item["error"], self.address)

        return data
