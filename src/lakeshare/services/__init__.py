"""🔌 Services - External collaborators invoked by workflow steps.

Two implementations of every collaborator:
- `aws`: boto3 clients for RAM, Lake Formation, Glue, and EventBridge
- `memory`: in-process stand-ins for simulations and tests

The boto3 module is imported lazily so local runs do not need credentials.
"""

from .base import (
    ALL,
    DATA_LOCATION_ACCESS,
    CatalogService,
    ControlPlaneServices,
    CrawlerService,
    DomainServices,
    EventPublisher,
    Grant,
    LocationResource,
    PermissionService,
    ShareService,
    TableResource,
)
from .memory import (
    InMemoryCatalog,
    InMemoryCrawlers,
    InMemoryPermissions,
    InMemoryShares,
)

__all__ = [
    "ALL",
    "DATA_LOCATION_ACCESS",
    "CatalogService",
    "ControlPlaneServices",
    "CrawlerService",
    "DomainServices",
    "EventPublisher",
    "Grant",
    "LocationResource",
    "PermissionService",
    "ShareService",
    "TableResource",
    "InMemoryCatalog",
    "InMemoryCrawlers",
    "InMemoryPermissions",
    "InMemoryShares",
]
