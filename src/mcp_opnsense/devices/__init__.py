"""Transport to OPNsense appliances."""
from .base import DeviceConfig, DEFAULT_URL
from .opnsense import OPNsenseClient

__all__ = [
    "DeviceConfig",
    "DEFAULT_URL",
    "OPNsenseClient",
    "create_client",
]


def create_client(device_id: str, config: dict) -> OPNsenseClient:
    """Factory function to create a client from an inventory entry."""
    known = DeviceConfig.__dataclass_fields__
    unknown = sorted(set(config) - set(known))
    if unknown:
        raise ValueError(f"Unknown settings for device {device_id}: {', '.join(unknown)}")
    return OPNsenseClient(device_id, DeviceConfig(**config))
