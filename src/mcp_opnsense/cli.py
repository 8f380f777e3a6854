#!/usr/bin/env python3
"""opncraft command line.

Usage:
    opncraft [--devices FILE] [-v] devices
    opncraft kinds
    opncraft discover KIND [--device NAME ...]
    opncraft plan FILE
    opncraft apply FILE [--dry-run]

Environment variables:
    OPNCRAFT_DEVICES=path           Device inventory (see DeviceInventory)
    OPNCRAFT_LOG_LEVEL=DEBUG        Console log level
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Optional

from .config.inventory import DeviceInventory
from .errors import OpnError
from .reconcile import MANAGED_KINDS, ReconcileEngine, summarize_changes
from .reconcile.parser import ParseError, parse_file
from .utils.audit_log import setup_audit_logging
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _discover(engine: ReconcileEngine, kind: str, devices: Optional[list[str]]) -> int:
    objects = await engine.discover(kind, devices)
    _print_json([
        {"device": o.device, "name": o.name, "identifier": o.identifier, "config": o.attributes}
        for o in objects
    ])
    return 0


async def _plan(engine: ReconcileEngine, path: str) -> int:
    changes = await engine.plan(parse_file(path))
    print(summarize_changes(changes))
    return 0


async def _apply(engine: ReconcileEngine, path: str, dry_run: bool) -> int:
    result = await engine.apply(parse_file(path), dry_run=dry_run)
    print(summarize_changes(result.changes))

    for failure in result.failures:
        logger.error(f"{failure.operation} {failure.kind} {failure.name}@{failure.device}: {failure.error}")
    for domain, outcomes in result.reloads.items():
        for device, outcome in outcomes.items():
            logger.info(f"reload {domain} on {device}: {outcome}")

    return 0 if result.success else 1


async def _run(args: argparse.Namespace) -> int:
    inventory = DeviceInventory(args.devices)
    engine = ReconcileEngine(inventory, strict_relations=args.strict)
    try:
        if args.command == "discover":
            return await _discover(engine, args.kind, args.device)
        if args.command == "plan":
            return await _plan(engine, args.file)
        return await _apply(engine, args.file, args.dry_run)
    finally:
        await inventory.close_all()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="opncraft",
        description="Reconcile declared OPNsense configuration against live devices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Show what would change
    opncraft plan site.yaml

    # Apply, reloading each touched firewall once
    opncraft apply site.yaml

    # List HAProxy ACLs on one firewall
    opncraft discover haproxy_acl --device fw01
""",
    )
    parser.add_argument(
        "--devices",
        type=str,
        default=None,
        help="Device inventory file (default: search OPNCRAFT_DEVICES, ./configs, ~/.config/opncraft)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail when a relation name does not resolve instead of passing it through",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("devices", help="List configured devices")
    commands.add_parser("kinds", help="List object kinds that can be reconciled")

    discover = commands.add_parser("discover", help="List live objects of a kind")
    discover.add_argument("kind", help="Object kind (e.g., haproxy_acl)")
    discover.add_argument(
        "--device",
        action="append",
        help="Device or group to read (repeatable, default: all)",
    )

    plan = commands.add_parser("plan", help="Show changes for a desired state file")
    plan.add_argument("file", help="YAML or JSON desired state file")

    apply = commands.add_parser("apply", help="Reconcile a desired state file")
    apply.add_argument("file", help="YAML or JSON desired state file")
    apply.add_argument("--dry-run", action="store_true", help="Preview and audit only")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the opncraft CLI."""
    args = build_parser().parse_args(argv)

    if args.verbose:
        os.environ["OPNCRAFT_LOG_LEVEL"] = "DEBUG"
    setup_logging()

    if args.command == "kinds":
        for kind in MANAGED_KINDS:
            print(f"{kind.name:20s} {kind.reload_domain or '-'}")
        return 0

    try:
        if args.command == "devices":
            inventory = DeviceInventory(args.devices)
            for device_id in inventory.device_names():
                config = inventory.get_device_config(device_id)
                print(f"{device_id:20s} {config.get('url', '')}")
            return 0

        if args.command == "apply":
            setup_audit_logging()
        return asyncio.run(_run(args))

    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except (FileNotFoundError, KeyError, ParseError, OpnError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
