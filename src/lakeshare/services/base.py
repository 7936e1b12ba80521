"""🔌 Collaborator Protocols - The external services workflows call.

Each method is a synchronous call that either returns a payload or raises
`ServiceError` with a named kind (e.g. `AlreadyExists`).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from lakeshare.products.models import CrawlJob, ResourceLink, ShareInvitation

DATA_LOCATION_ACCESS = "DATA_LOCATION_ACCESS"
ALL = "ALL"


@dataclass(frozen=True)
class LocationResource:
    arn: str


@dataclass(frozen=True)
class TableResource:
    database_name: str
    table_name: str


Resource = LocationResource | TableResource


@dataclass(frozen=True)
class Grant:
    principal: str
    resource: Resource
    permissions: tuple[str, ...]
    grantable: tuple[str, ...] = ()


class ShareService(Protocol):
    def list_invitations(self) -> list[ShareInvitation]: ...

    def accept_invitation(self, invitation_id: str) -> ShareInvitation: ...


class PermissionService(Protocol):
    def register_location(self, location_arn: str, role: str) -> None: ...

    def grant_permissions(self, grant: Grant) -> None: ...


class CatalogService(Protocol):
    def create_database(self, name: str, description: str = "") -> None: ...

    def update_database(self, name: str, parameters: dict[str, str]) -> None: ...

    def create_table(
        self, database_name: str, table_name: str, parameters: dict[str, str] | None = None
    ) -> None: ...

    def create_resource_link(self, link: ResourceLink) -> None: ...


class CrawlerService(Protocol):
    def create_crawl_job(self, job: CrawlJob) -> None: ...

    def start_crawl_job(self, name: str) -> None: ...

    def get_crawl_job(self, name: str) -> CrawlJob: ...

    def delete_crawl_job(self, name: str) -> None: ...


class EventPublisher(Protocol):
    def put_event(self, source: str, detail_type: str, detail: dict[str, Any]) -> str: ...


@dataclass
class ControlPlaneServices:
    """Collaborators used by the governance workflow."""

    permissions: PermissionService
    catalog: CatalogService
    events: EventPublisher


@dataclass
class DomainServices:
    """Collaborators used by the intake and refresh workflows."""

    shares: ShareService
    catalog: CatalogService
    permissions: PermissionService
    crawlers: CrawlerService | None = None
