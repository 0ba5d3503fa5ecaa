"""Generic resource lifecycle shared by every façade."""

from az_toolkit.core.context import LoggingMessager, Messager, ToolkitContext  # noqa: F401
from az_toolkit.core.preload import register_preload, run_preloads  # noqa: F401
from az_toolkit.core.region import Region  # noqa: F401
from az_toolkit.core.resource import (  # noqa: F401
    AzResource,
    ResourceDraft,
    ResourceKind,
    ResourceModule,
    Status,
)
from az_toolkit.core.service import AzService, ServiceSubscription  # noqa: F401
