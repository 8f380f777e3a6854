"""Connection settings for an OPNsense appliance."""
import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_URL = "http://localhost:80/api"


@dataclass
class DeviceConfig:
    """Configuration for one OPNsense device."""
    url: str = DEFAULT_URL
    name: str = ""
    api_key: Optional[str] = None
    api_secret: Optional[str] = None
    api_key_env: str = "OPNSENSE_API_KEY"
    api_secret_env: str = "OPNSENSE_API_SECRET"
    ssl_verify: bool = True
    timeout: int = 60
    max_redirects: int = 5
    description: str = ""

    def get_api_key(self) -> str:
        """Get API key from config or environment variable."""
        if self.api_key:
            return self.api_key
        return os.environ.get(self.api_key_env, "")

    def get_api_secret(self) -> str:
        """Get API secret from config or environment variable."""
        if self.api_secret:
            return self.api_secret
        return os.environ.get(self.api_secret_env, "")

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")
