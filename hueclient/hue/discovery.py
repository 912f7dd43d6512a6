"""Bridge discovery on the local network."""

from dataclasses import dataclass
from typing import Callable, Optional

import requests
from loguru import logger

NUPNP_URL = "https://discovery.meethue.com/"


@dataclass
class DiscoveredBridge:
    """A bridge found on the network."""

    bridge_id: str
    address: str
    port: int = 443
    name: Optional[str] = None
    model_id: Optional[str] = None
    sw_version: Optional[str] = None


def _discover_nupnp(session: requests.Session, timeout: float) -> list[DiscoveredBridge]:
    response = session.get(NUPNP_URL, timeout=timeout)
    response.raise_for_status()
    data = response.json()
    if not isinstance(data, list):
        return []

    return [
        DiscoveredBridge(
            bridge_id=str(item["id"]).lower(),
            address=item["internalipaddress"],
            port=item.get("port", 443),
        )
        for item in data
        if isinstance(item, dict) and "id" in item and "internalipaddress" in item
    ]


def discover_bridges(
    session: Optional[requests.Session] = None,
    timeout: float = 5,
    sources: Optional[list[Callable[[requests.Session, float], list[DiscoveredBridge]]]] = None,
) -> list[DiscoveredBridge]:
    """
    Find bridges using every discovery source.

    A failing source is logged and skipped. Bridges reported by more than
    one source are returned once.

    Args:
        session: HTTP session (a new one is used if omitted).
        timeout: Per-request timeout in seconds.
        sources: Discovery functions (defaults to the N-UPnP broker).

    Returns:
        Unique bridges in discovery order.
    """
    session = session or requests.Session()
    sources = sources if sources is not None else [_discover_nupnp]

    found: list[DiscoveredBridge] = []
    for source in sources:
        try:
            found.extend(source(session, timeout))
        except (requests.RequestException, ValueError, KeyError) as e:
            logger.warning(f"Bridge discovery via {source.__name__} failed: {e}")

    unique: dict[str, DiscoveredBridge] = {}
    for bridge in found:
        unique.setdefault(bridge.bridge_id, bridge)

    if unique:
        logger.info(f"Discovered {len(unique)} Hue Bridge(s): "
                    f"{', '.join(b.address for b in unique.values())}")
    return list(unique.values())


def probe_address(
    address: str,
    session: Optional[requests.Session] = None,
    timeout: float = 5,
) -> Optional[DiscoveredBridge]:
    """Check whether a Hue Bridge answers at ``address``."""
    session = session or requests.Session()
    try:
        response = session.get(f"https://{address}/api/config", timeout=timeout, verify=False)
        data = response.json()
    except (requests.RequestException, ValueError) as e:
        logger.debug(f"No bridge at {address}: {e}")
        return None

    if not isinstance(data, dict) or "bridgeid" not in data:
        return None

    return DiscoveredBridge(
        bridge_id=str(data["bridgeid"]).lower(),
        address=address,
        name=data.get("name"),
        model_id=data.get("modelid"),
        sw_version=data.get("swversion"),
    )
