"""Service wiring configuration, logging and the bridge pool together."""

import os
import signal
import sys
import time
from pathlib import Path
from typing import Callable, Optional

import yaml
from apscheduler.schedulers.background import BackgroundScheduler
from loguru import logger

from hueclient.errors import HueError, LinkButtonPendingError
from hueclient.hue.config import PipelineConfig
from hueclient.hue.effects import Alert, Breathing, ColorLoop
from hueclient.hue.models import BroadcastResult, HealthReport
from hueclient.hue.pool import BridgePool, PipelineFactory
from hueclient.storage.backends import create_backend
from hueclient.storage.cache import ResponseCache

EFFECTS = ("alert", "breathing", "colorloop")


def default_config() -> dict:
    """Return default configuration."""
    return {
        "bridges": [],
        "defaults": {},
        "pool": {"max_connections": 10, "probe_timeout": 5, "health_interval": 60},
        "cache": {"ttl": {}},
        "registration": {"attempts": 3, "wait_seconds": 30},
        "logging": {"level": "INFO", "file_path": "logs/hueclient.log"},
    }


def load_config(config_path: str) -> dict:
    """
    Load configuration from a YAML file, filling gaps from the defaults.

    Args:
        config_path: Path to the YAML file.

    Returns:
        The merged configuration.
    """
    config = default_config()
    path = Path(config_path)
    if not path.exists():
        logger.warning(f"Config file not found: {config_path}, using defaults")
        loaded = {}
    else:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}

    for section, value in loaded.items():
        if isinstance(value, dict) and isinstance(config.get(section), dict):
            config[section] = {**config[section], **value}
        else:
            config[section] = value

    if not config["bridges"] and os.getenv("HUE_BRIDGE_IP"):
        config["bridges"] = [
            {"address": os.getenv("HUE_BRIDGE_IP"), "token": os.getenv("HUE_USERNAME")}
        ]
    return config


class HueService:
    """Owns the bridge pool and keeps an eye on bridge health."""

    def __init__(
        self,
        config_path: str = "config.yaml",
        pipeline_factory: Optional[PipelineFactory] = None,
        setup_logging: bool = True,
    ):
        """
        Initialize the service.

        Args:
            config_path: Path to configuration file.
            pipeline_factory: Override how pipelines are built (tests).
            setup_logging: Install the configured log sinks.
        """
        self.config = load_config(config_path)
        if setup_logging:
            self._setup_logging()

        self.defaults = self.config["defaults"] or {}
        default_pipeline_config = PipelineConfig.from_dict(self.defaults)

        cache = None
        if default_pipeline_config.cache_enabled:
            cache = ResponseCache(
                create_backend(default_pipeline_config),
                ttl_overrides=self.config["cache"].get("ttl"),
            )

        pool_config = self.config["pool"]
        self.pool = BridgePool(
            max_connections=pool_config["max_connections"],
            probe_timeout=pool_config["probe_timeout"],
            default_config=default_pipeline_config,
            cache=cache,
            pipeline_factory=pipeline_factory,
        )
        for bridge in self.config["bridges"] or []:
            self.add_bridge(bridge["address"], bridge.get("token"), bridge.get("options"))

        self.scheduler = BackgroundScheduler()
        self._running = False

    def _setup_logging(self):
        """Configure logging."""
        log_config = self.config.get("logging", {})
        log_path = Path(log_config.get("file_path", "logs/hueclient.log"))
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # Remove default handler
        logger.remove()

        logger.add(
            sys.stderr,
            level=log_config.get("level", "INFO"),
            format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
        )

        logger.add(
            str(log_path),
            level="DEBUG",
            rotation=f"{log_config.get('max_size_mb', 10)} MB",
            retention=log_config.get("backup_count", 5),
        )

    def add_bridge(self, address: str, token: Optional[str], options: Optional[dict] = None):
        """Add a bridge, layering its options over the configured defaults."""
        config = PipelineConfig.from_dict({**self.defaults, **(options or {})})
        self.pool.add_endpoint(address, token, config)

    def register(
        self,
        address: str,
        app_name: str,
        device_name: Optional[str] = None,
        attempts: Optional[int] = None,
        wait_seconds: Optional[int] = None,
    ) -> Optional[str]:
        """
        Register with a bridge, prompting for the link button as needed.

        Args:
            address: Bridge address (added to the pool if unknown).
            app_name: Application name.
            device_name: Device name (defaults to the host name).
            attempts: Registration attempts before giving up.
            wait_seconds: Time given to press the button between attempts.

        Returns:
            The new token, or None if registration failed.
        """
        registration = self.config["registration"]
        attempts = attempts or registration["attempts"]
        wait_seconds = registration["wait_seconds"] if wait_seconds is None else wait_seconds

        if address not in self.pool.addresses():
            self.add_bridge(address, None)
        pipeline = self.pool.get_pipeline(address)

        for attempt in range(1, attempts + 1):
            try:
                return pipeline.register(app_name, device_name)
            except LinkButtonPendingError:
                if attempt == attempts:
                    break
                logger.warning("Press the link button on your Hue Bridge, then wait...")
                self._wait_for_button_press(wait_seconds)
            except HueError as e:
                logger.error(f"Failed to register with Hue Bridge {address}: {e}")
                return None

        logger.error(f"Link button was not pressed after {attempts} attempts")
        return None

    def _wait_for_button_press(self, timeout: int = 30):
        """Wait for user to press the link button."""
        logger.info(f"Waiting {timeout} seconds for button press...")
        for i in range(timeout):
            print(f"\rWaiting... {timeout - i}s remaining", end="", flush=True)
            time.sleep(1)
        print()

    def start(self):
        """Start the service."""
        logger.info("Starting hueclient service...")

        if not self.pool.bridge_count():
            logger.error("No bridges configured. Exiting.")
            sys.exit(1)

        signal.signal(signal.SIGINT, self._shutdown)
        signal.signal(signal.SIGTERM, self._shutdown)

        interval = self.config["pool"]["health_interval"]
        self.scheduler.add_job(
            self.run_health_check,
            "interval",
            seconds=interval,
            id="health_check",
        )

        self.scheduler.start()
        self._running = True

        self.run_health_check()
        logger.info(f"Service started. Checking bridge health every {interval}s")

        # Keep main thread alive
        while self._running:
            time.sleep(1)

    def play_effect(
        self,
        name: str,
        group_id: str = "0",
        color: str = "#FFFFFF",
        duration: float = 10,
        sleep: Callable[[float], None] = time.sleep,
    ) -> dict[str, BroadcastResult]:
        """
        Play an effect on one group of every bridge at once.

        Args:
            name: "alert", "breathing" or "colorloop".
            group_id: Group on each bridge ("0" is all lights).
            color: Hex colour for breathing.
            duration: Run time in seconds (number of flashes for alert).
            sleep: Blocking wait function.

        Returns:
            One BroadcastResult per bridge address.
        """
        if name not in EFFECTS:
            raise ValueError(f"Unknown effect {name!r}, expected one of {EFFECTS}")

        def play(pipeline):
            if name == "alert":
                Alert(pipeline, group_id=group_id, sleep=sleep).flash(times=max(1, int(duration)))
            elif name == "breathing":
                Breathing(pipeline, group_id=group_id, sleep=sleep).start(color, duration=duration)
            else:
                ColorLoop(pipeline, group_id=group_id, sleep=sleep).start(duration)

        logger.info(f"Playing {name} on group {group_id} of {self.pool.bridge_count()} bridge(s)")
        return self.pool.broadcast(play)

    def run_health_check(self) -> dict[str, HealthReport]:
        """Probe all bridges and log the outcome."""
        reports = self.pool.health_check_all()
        for address, report in reports.items():
            if report.is_healthy:
                logger.info(f"{address}: healthy ({report.latency * 1000:.0f} ms)")
            else:
                logger.warning(f"{address}: unhealthy - {report.error}")
        return reports

    def _shutdown(self, signum, frame):
        """Graceful shutdown."""
        logger.info("Shutting down...")
        self._running = False
        self.scheduler.shutdown(wait=False)
        self.pool.close()
        sys.exit(0)

    def get_status(self) -> dict:
        """Get current service status."""
        return {
            "running": self._running,
            "pool": self.pool.status(),
            "cache": self.pool.cache.stats() if self.pool.cache is not None else None,
        }
