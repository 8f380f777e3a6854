"""Device inventory management from YAML configuration."""
import logging
import os
from pathlib import Path
from typing import Optional

import yaml

from ..devices import create_client, OPNsenseClient

logger = logging.getLogger(__name__)


class DeviceInventory:
    """Manages the OPNsense device inventory loaded from YAML config.

    ```yaml
    defaults:
      api_key_env: OPNSENSE_API_KEY
      api_secret_env: OPNSENSE_API_SECRET
      timeout: 60

    devices:
      fw01:
        url: https://fw01.example.com/api
      fw02:
        url: https://fw02.example.com/api
        ssl_verify: false

    groups:
      edge:
        - fw01
        - fw02
    ```

    Clients are created lazily on first use and cached for the lifetime
    of the inventory.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._find_config()
        self._config: dict = {}
        self._clients: dict[str, OPNsenseClient] = {}
        self._load_config()

    def _find_config(self) -> str:
        """Find the devices.yaml config file."""
        env_path = os.environ.get("OPNCRAFT_DEVICES")
        if env_path:
            return env_path

        search_paths = [
            Path.cwd() / "configs" / "devices.yaml",
            Path.cwd() / "devices.yaml",
            Path.home() / ".config" / "opncraft" / "devices.yaml",
            Path("/etc/opncraft/devices.yaml"),
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        raise FileNotFoundError(
            "Could not find devices.yaml. Create one in ./configs/devices.yaml "
            "or point OPNCRAFT_DEVICES at it"
        )

    def _load_config(self) -> None:
        """Load the YAML configuration."""
        with open(self.config_path, encoding="utf-8") as f:
            self._config = yaml.safe_load(f) or {}

        if not isinstance(self._config, dict):
            raise ValueError(f"Inventory '{self.config_path}' is not a YAML mapping")

        defaults = self._config.get("defaults") or {}
        devices = self._config.get("devices") or {}
        for device_id, device_config in devices.items():
            if device_config is None:
                device_config = devices[device_id] = {}
            for key, value in defaults.items():
                device_config.setdefault(key, value)
            device_config.setdefault("name", device_id)
        self._config["devices"] = devices

        self._validate_groups()

    def device_names(self) -> list[str]:
        """Get all configured device names."""
        return list(self._config["devices"].keys())

    def get_device_config(self, device_id: str) -> dict:
        """Get raw config for a device."""
        devices = self._config["devices"]
        if device_id not in devices:
            raise KeyError(f"Unknown device: {device_id}")
        return devices[device_id]

    def client_for(self, device_id: str) -> OPNsenseClient:
        """Get or create the API client for a device."""
        if device_id not in self._clients:
            config = dict(self.get_device_config(device_id))
            self._clients[device_id] = create_client(device_id, config)
        return self._clients[device_id]

    async def close_all(self) -> None:
        """Close all client sessions."""
        for client in self._clients.values():
            await client.close()
        self._clients.clear()

    # === Group Management ===

    def _validate_groups(self) -> None:
        """Warn about group members that reference unknown devices."""
        groups = self._config.get("groups") or {}
        devices = self._config["devices"]

        for group_name, members in groups.items():
            if not isinstance(members, list):
                logger.warning(f"Group '{group_name}' should be a list of device names")
                continue
            for device_id in members:
                if device_id not in devices:
                    logger.warning(
                        f"Group '{group_name}' references unknown device: {device_id}"
                    )

    def get_groups(self) -> dict[str, list[str]]:
        """Get all defined groups and their members."""
        return dict(self._config.get("groups") or {})

    def get_group_members(self, group_name: str) -> list[str]:
        """Get device names in a group.

        Raises:
            KeyError: If group doesn't exist
        """
        groups = self._config.get("groups") or {}
        if group_name not in groups:
            raise KeyError(f"Unknown group: {group_name}")
        return list(groups[group_name])

    def resolve_targets(self, targets: Optional[list[str]] = None) -> list[str]:
        """Expand a mix of device and group names into device names.

        With no targets, every configured device is returned.
        """
        if not targets:
            return self.device_names()

        groups = self._config.get("groups") or {}
        resolved: list[str] = []
        for target in targets:
            members = groups[target] if target in groups else [target]
            for device_id in members:
                if device_id not in resolved:
                    resolved.append(device_id)
        return resolved
