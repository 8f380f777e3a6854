"""MCP Server for OPNsense configuration reconciliation.

Provides declarative access to one or more OPNsense firewalls:
- Firewall aliases, HAProxy objects and settings
- Trust certificates and revocation lists
- Zabbix agent/proxy settings

Tools exposed:
- list_devices: List all configured devices
- list_kinds: List the object kinds that can be reconciled
- discover: List live objects of a kind (relations shown by name)
- plan: Show the changes a set of desired resources needs
- apply: Reconcile desired resources (one reload per device)
- recent_changes: Read the audit log
"""
import asyncio
import json
import logging
import os
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import (
    TextContent,
    Tool,
    Resource,
)
from pydantic import AnyUrl

from .config.inventory import DeviceInventory
from .reconcile import (
    KINDS,
    MANAGED_KINDS,
    ReconcileEngine,
    ResourceParser,
    summarize_changes,
)
from .utils.logging_config import setup_logging, timed_section
from .utils.audit_log import setup_audit_logging, get_recent_changes

logger = logging.getLogger(__name__)

URI_SCHEME = "opnsense://"

# Global inventory (initialized on first use)
inventory: Optional[DeviceInventory] = None


def get_inventory() -> DeviceInventory:
    """Get or create the device inventory."""
    global inventory
    if inventory is None:
        inventory = DeviceInventory(os.environ.get("OPNCRAFT_DEVICES"))
    return inventory


def get_engine(inv: DeviceInventory) -> ReconcileEngine:
    strict = os.environ.get("OPNCRAFT_STRICT_RELATIONS", "").lower() in ("1", "true", "yes")
    return ReconcileEngine(inv, strict_relations=strict, user="mcp")


# Create MCP server
server = Server("opncraft")


_DOCUMENT_SCHEMA = {
    "type": "object",
    "description": (
        "Desired state: {\"resources\": [{\"kind\": ..., \"name\": \"item@device\", "
        "\"ensure\": \"present\"|\"absent\", \"config\": {...}}]}"
    ),
    "properties": {
        "resources": {"type": "array", "items": {"type": "object"}},
    },
    "required": ["resources"],
}


# === TOOLS ===

@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    return [
        Tool(
            name="list_devices",
            description="List all configured OPNsense devices and groups",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": []
            }
        ),
        Tool(
            name="list_kinds",
            description="List the object kinds that can be reconciled, in evaluation order",
            inputSchema={
                "type": "object",
                "properties": {},
                "required": []
            }
        ),
        Tool(
            name="discover",
            description="List live objects of one kind, with references shown by name",
            inputSchema={
                "type": "object",
                "properties": {
                    "kind": {
                        "type": "string",
                        "description": "Object kind (e.g., 'haproxy_acl', 'firewall_alias')"
                    },
                    "devices": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Device or group names (default: all devices)"
                    }
                },
                "required": ["kind"]
            }
        ),
        Tool(
            name="plan",
            description="Show the changes needed to reach the desired state, without applying them",
            inputSchema={
                "type": "object",
                "properties": {
                    "document": _DOCUMENT_SCHEMA,
                },
                "required": ["document"]
            }
        ),
        Tool(
            name="apply",
            description=(
                "Reconcile desired resources. Each touched device is reloaded once at the end; "
                "a device with any failed change is not reloaded."
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "document": _DOCUMENT_SCHEMA,
                    "dry_run": {
                        "type": "boolean",
                        "description": "Preview and audit only (default: false)",
                        "default": False
                    }
                },
                "required": ["document"]
            }
        ),
        Tool(
            name="recent_changes",
            description="Get recent changes from the audit log",
            inputSchema={
                "type": "object",
                "properties": {
                    "device": {"type": "string", "description": "Filter by device"},
                    "kind": {"type": "string", "description": "Filter by object kind"},
                    "limit": {
                        "type": "integer",
                        "description": "Maximum records to return (default: 20)",
                        "default": 20
                    }
                },
                "required": []
            }
        ),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls."""
    async with timed_section(f"tool:{name}"):
        try:
            inv = get_inventory()

            if name == "list_devices":
                return await handle_list_devices(inv)

            elif name == "list_kinds":
                return await handle_list_kinds()

            elif name == "discover":
                return await handle_discover(
                    inv,
                    arguments["kind"],
                    arguments.get("devices")
                )

            elif name == "plan":
                return await handle_plan(inv, arguments["document"])

            elif name == "apply":
                return await handle_apply(
                    inv,
                    arguments["document"],
                    arguments.get("dry_run", False)
                )

            elif name == "recent_changes":
                return await handle_recent_changes(
                    arguments.get("device"),
                    arguments.get("kind"),
                    arguments.get("limit", 20)
                )

            else:
                return [TextContent(type="text", text=f"Unknown tool: {name}")]

        except Exception as e:
            logger.exception(f"Tool {name} failed")
            return [TextContent(type="text", text=f"Error: {str(e)}")]


# === TOOL HANDLERS ===

def _text(payload: dict) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2, default=str))]


async def handle_list_devices(inv: DeviceInventory) -> list[TextContent]:
    """List all configured devices."""
    devices = []
    for device_id in inv.device_names():
        config = inv.get_device_config(device_id)
        devices.append({
            "id": device_id,
            "name": config.get("name", device_id),
            "url": config.get("url"),
            "description": config.get("description"),
        })

    return _text({"devices": devices, "groups": inv.get_groups()})


async def handle_list_kinds() -> list[TextContent]:
    """List managed kinds with their reload domains and relations."""
    kinds = [
        {
            "kind": kind.name,
            "identity": "device" if kind.singleton else kind.identity_field,
            "reload_domain": kind.reload_domain,
            "relations": {r.field: r.target for r in kind.relations},
        }
        for kind in MANAGED_KINDS
    ]
    return _text({"kinds": kinds})


async def handle_discover(
    inv: DeviceInventory,
    kind: str,
    devices: Optional[list[str]] = None
) -> list[TextContent]:
    """Discover live objects of a kind."""
    objects = await get_engine(inv).discover(kind, devices)
    return _text({
        "kind": kind,
        "total": len(objects),
        "objects": [
            {
                "device": obj.device,
                "name": obj.name,
                "identifier": obj.identifier,
                "config": obj.attributes,
            }
            for obj in objects
        ],
    })


async def handle_plan(inv: DeviceInventory, document: dict) -> list[TextContent]:
    """Plan changes for a desired state document."""
    resources = ResourceParser().parse(document)
    changes = await get_engine(inv).plan(resources)
    return _text({
        "total_changes": len(changes),
        "summary": summarize_changes(changes),
        "changes": [
            {
                "kind": c.kind,
                "title": c.title,
                "change": c.change_type.value,
                "fields": c.changed_fields,
            }
            for c in changes
        ],
    })


async def handle_apply(inv: DeviceInventory, document: dict, dry_run: bool) -> list[TextContent]:
    """
    Apply a desired state document.

    Use dry_run=True to preview changes without applying.
    """
    resources = ResourceParser().parse(document)
    result = await get_engine(inv).apply(resources, dry_run=dry_run)

    response = result.to_dict()
    response["summary"] = summarize_changes(result.changes)
    return _text(response)


async def handle_recent_changes(
    device: Optional[str] = None,
    kind: Optional[str] = None,
    limit: int = 20
) -> list[TextContent]:
    """Get recent changes from the audit log."""
    records = get_recent_changes(device=device, kind=kind, limit=limit)

    return _text({
        "total_records": len(records),
        "filters": {
            "device": device,
            "kind": kind,
            "limit": limit,
        },
        "records": [
            {
                "timestamp": r.timestamp,
                "kind": r.kind,
                "device": r.device,
                "name": r.name,
                "operation": r.operation,
                "dry_run": r.dry_run,
                "success": r.success,
                "identifier": r.identifier,
                "error": r.error,
            }
            for r in records
        ],
    })


# === RESOURCES ===

@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources (one per device and managed kind)."""
    inv = get_inventory()
    resources = []

    for device_id in inv.device_names():
        config = inv.get_device_config(device_id)
        for kind in MANAGED_KINDS:
            resources.append(Resource(
                uri=AnyUrl(f"{URI_SCHEME}{device_id}/{kind.name}"),
                name=f"{config.get('name', device_id)} {kind.name}",
                description=f"Live {kind.name} objects on {device_id}",
                mimeType="application/json",
            ))

    return resources


@server.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource."""
    # Parse URI: opnsense://device_id/kind
    uri_str = str(uri)
    if uri_str.startswith(URI_SCHEME):
        parts = uri_str[len(URI_SCHEME):].split("/")
        if len(parts) >= 2 and parts[1] in KINDS:
            result = await handle_discover(get_inventory(), parts[1], [parts[0]])
            return result[0].text

    return json.dumps({"error": f"Unknown resource: {uri}"})


def main():
    """Run the MCP server."""
    setup_logging()
    setup_audit_logging()

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options()
            )

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass
    finally:
        # Cleanup
        if inventory:
            asyncio.run(inventory.close_all())


if __name__ == "__main__":
    main()
