"""Toolkit settings loaded from environment variables."""

import logging
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CloudName = Literal["AzureCloud", "AzureChinaCloud", "AzureUSGovernment"]

# Management endpoints per sovereign cloud.  Container Registry tokens are
# requested for the same audience.
MANAGEMENT_ENDPOINTS: dict[str, str] = {
    "AzureCloud": "https://management.azure.com",
    "AzureChinaCloud": "https://management.chinacloudapi.cn",
    "AzureUSGovernment": "https://management.usgovcloudapi.net",
}

PORTAL_URLS: dict[str, str] = {
    "AzureCloud": "https://portal.azure.com",
    "AzureChinaCloud": "https://portal.azure.cn",
    "AzureUSGovernment": "https://portal.azure.us",
}


class ToolkitSettings(BaseSettings):
    """Configuration for az-toolkit.

    Values are read from ``AZ_TOOLKIT_*`` environment variables
    (case-insensitive) and optionally from a ``.env`` file in the working
    directory.
    """

    cloud: CloudName = "AzureCloud"
    tenant_id: str = ""
    user_agent: str = "az-toolkit"

    enable_preloading: bool = True
    preload_workers: int = 2

    request_timeout: int = 30
    operation_timeout: int = 1800  # long-running ARM operations, seconds
    poll_interval: float = 5.0
    page_size: int = 100
    cache_ttl: int = 4 * 60 * 60  # expire-after-access, seconds

    public_ip_url: str = "https://api.ipify.org"

    model_config = SettingsConfigDict(
        env_prefix="AZ_TOOLKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _validate_intervals(self) -> "ToolkitSettings":
        if self.poll_interval < 0:
            raise ValueError("AZ_TOOLKIT_POLL_INTERVAL must not be negative")
        if self.page_size <= 0:
            raise ValueError("AZ_TOOLKIT_PAGE_SIZE must be positive")
        return self

    @property
    def management_endpoint(self) -> str:
        return MANAGEMENT_ENDPOINTS[self.cloud]

    @property
    def portal_url(self) -> str:
        return PORTAL_URLS[self.cloud]


settings = ToolkitSettings()
