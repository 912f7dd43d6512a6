#!/usr/bin/env python3
"""
hueclient - Entry point.

Registers with, monitors and reports on one or more Hue Bridges.
"""

import argparse
import sys

from hueclient.hue.discovery import discover_bridges
from hueclient.service import EFFECTS, HueService


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="hueclient - Resilient multi-bridge Hue client"
    )
    parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    parser.add_argument(
        "--register",
        metavar="ADDRESS",
        help="Register with the bridge at ADDRESS and print the token",
    )
    parser.add_argument(
        "--app",
        default="hueclient",
        help="Application name used for registration (default: hueclient)",
    )
    parser.add_argument(
        "--device",
        help="Device name used for registration (default: host name)",
    )
    parser.add_argument(
        "--discover",
        action="store_true",
        help="Discover bridges on the network and exit",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        help="Check health of all configured bridges and exit",
    )
    parser.add_argument(
        "--effect",
        choices=EFFECTS,
        help="Play an effect on a group of every configured bridge and exit",
    )
    parser.add_argument(
        "--group",
        default="0",
        help="Group for --effect (default: 0, all lights)",
    )
    parser.add_argument(
        "--color",
        default="#FFFFFF",
        help="Hex colour for the breathing effect (default: #FFFFFF)",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=10,
        help="Effect run time in seconds (default: 10)",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Show status and exit",
    )

    args = parser.parse_args()

    if args.discover:
        bridges = discover_bridges()
        if not bridges:
            print("No Hue Bridges found")
            sys.exit(1)
        for bridge in bridges:
            print(f"{bridge.bridge_id}  {bridge.address}")
        return

    service = HueService(config_path=args.config)

    if args.register:
        token = service.register(args.register, args.app, args.device)
        if not token:
            print("Registration failed")
            sys.exit(1)
        print(f"Token for {args.register}: {token}")
        print("Add it to the bridges section of your config file.")

    elif args.health:
        reports = service.run_health_check()
        if not reports:
            print("No bridges configured")
            sys.exit(1)
        for address, report in reports.items():
            detail = (
                f"{report.latency * 1000:.0f} ms" if report.is_healthy else report.error
            )
            print(f"{address:<20} {report.status:<10} {detail}")
        if not all(report.is_healthy for report in reports.values()):
            sys.exit(2)

    elif args.effect:
        results = service.play_effect(args.effect, args.group, args.color, args.duration)
        if not results:
            print("No bridges configured")
            sys.exit(1)
        for address, result in results.items():
            print(f"{address:<20} {'ok' if result.ok else result.error}")
        if not all(result.ok for result in results.values()):
            sys.exit(2)

    elif args.status:
        service.run_health_check()
        status = service.get_status()
        print("\nhueclient status")
        print("=" * 40)
        print(f"Bridges configured: {status['pool']['bridges']}")
        print(f"Active connections: {status['pool']['active']}")
        for address, health in status["pool"]["health"].items():
            print(f"  {address}: {health['status'] if health else 'unknown'}")
        if status["cache"]:
            print(f"Cache backend: {status['cache']['backend']}")

    else:
        # Normal service mode
        service.start()


if __name__ == "__main__":
    main()
