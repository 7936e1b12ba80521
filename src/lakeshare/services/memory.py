"""🧠 In-Memory Services - Local stand-ins for the catalog, permissions,
share invitations, and crawl jobs.

Used by `lakeshare simulate` and the test-suite. Every service:
- raises `ServiceError(AlreadyExists)` where the real service would
- records each call in `calls` as (operation, args)
- is safe to call from concurrent fan-out branches
"""

from __future__ import annotations

import threading
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from lakeshare.errors import ALREADY_EXISTS, ENTITY_NOT_FOUND, ServiceError
from lakeshare.products.models import (
    CrawlJob,
    CrawlState,
    InvitationStatus,
    ResourceLink,
    ShareInvitation,
)

from .base import Grant


class _Recorder:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self._failures: dict[str, list[ServiceError]] = defaultdict(list)

    def _record(self, operation: str, *args: Any) -> None:
        with self._lock:
            self.calls.append((operation, args))
            failures = self._failures.get(operation)
            if failures:
                raise failures.pop(0)

    def fail_next(self, operation: str, kind: str, message: str = "") -> None:
        """Make the next call to `operation` raise a ServiceError."""
        with self._lock:
            self._failures[operation].append(ServiceError(kind, message, operation))

    def count(self, operation: str) -> int:
        with self._lock:
            return sum(1 for name, _ in self.calls if name == operation)


class InMemoryShares(_Recorder):
    """Share invitations as listed by the permission-sharing service."""

    def __init__(self, invitations: Iterable[ShareInvitation] = ()):
        super().__init__()
        self.invitations: dict[str, ShareInvitation] = {
            inv.invitation_id: inv for inv in invitations
        }

    def invite(self, invitation: ShareInvitation) -> None:
        with self._lock:
            self.invitations[invitation.invitation_id] = invitation

    def list_invitations(self) -> list[ShareInvitation]:
        self._record("list_invitations")
        with self._lock:
            return [replace(inv) for inv in self.invitations.values()]

    def accept_invitation(self, invitation_id: str) -> ShareInvitation:
        self._record("accept_invitation", invitation_id)
        with self._lock:
            invitation = self.invitations.get(invitation_id)
            if invitation is None:
                raise ServiceError(
                    ENTITY_NOT_FOUND, f"Invitation {invitation_id} not found", "accept_invitation"
                )
            if invitation.is_pending:
                invitation.status = InvitationStatus.ACCEPTED.value
            return replace(invitation)


class InMemoryPermissions(_Recorder):
    """Registered storage locations and granted permissions."""

    def __init__(self) -> None:
        super().__init__()
        self.locations: dict[str, str] = {}
        self.grants: list[Grant] = []

    def register_location(self, location_arn: str, role: str) -> None:
        self._record("register_location", location_arn, role)
        with self._lock:
            if location_arn in self.locations:
                raise ServiceError(
                    ALREADY_EXISTS,
                    f"Resource is already registered: {location_arn}",
                    "register_location",
                )
            self.locations[location_arn] = role

    def grant_permissions(self, grant: Grant) -> None:
        # Grants are idempotent in the permission store
        self._record("grant_permissions", grant)
        with self._lock:
            if grant not in self.grants:
                self.grants.append(grant)

    def grants_for(self, principal: str) -> list[Grant]:
        with self._lock:
            return [g for g in self.grants if g.principal == principal]


class InMemoryCatalog(_Recorder):
    """Databases, tables, and resource-links of one domain's catalog."""

    def __init__(self, databases: Iterable[str] = ()):
        super().__init__()
        self.databases: dict[str, dict[str, Any]] = {
            name: {"description": "", "parameters": {}} for name in databases
        }
        self.tables: dict[tuple[str, str], dict[str, str]] = {}
        self.links: dict[tuple[str, str], ResourceLink] = {}

    def create_database(self, name: str, description: str = "") -> None:
        self._record("create_database", name, description)
        with self._lock:
            if name in self.databases:
                raise ServiceError(
                    ALREADY_EXISTS, f"Database already exists: {name}", "create_database"
                )
            self.databases[name] = {"description": description, "parameters": {}}

    def update_database(self, name: str, parameters: dict[str, str]) -> None:
        self._record("update_database", name, parameters)
        with self._lock:
            if name not in self.databases:
                raise ServiceError(ENTITY_NOT_FOUND, f"Database {name} not found", "update_database")
            self.databases[name]["parameters"] = dict(parameters)

    def create_table(
        self,
        database_name: str,
        table_name: str,
        parameters: dict[str, str] | None = None,
    ) -> None:
        self._record("create_table", database_name, table_name)
        with self._lock:
            self._check_table_slot(database_name, table_name, "create_table")
            self.tables[(database_name, table_name)] = dict(parameters or {})

    def create_resource_link(self, link: ResourceLink) -> None:
        self._record("create_resource_link", link)
        with self._lock:
            self._check_table_slot(link.database_name, link.name, "create_resource_link")
            self.links[(link.database_name, link.name)] = link

    def _check_table_slot(self, database_name: str, name: str, operation: str) -> None:
        if database_name not in self.databases:
            raise ServiceError(ENTITY_NOT_FOUND, f"Database {database_name} not found", operation)
        key = (database_name, name)
        if key in self.tables or key in self.links:
            raise ServiceError(
                ALREADY_EXISTS, f"Table already exists: {database_name}.{name}", operation
            )


class InMemoryCrawlers(_Recorder):
    """Crawl jobs that walk through a scripted sequence of states.

    Each `get_crawl_job` call after the job is started reports the next
    state of the script; the last state repeats.

    Example:
        crawlers = InMemoryCrawlers(script=["RUNNING", "RUNNING", "READY"])
    """

    def __init__(self, script: Iterable[str] = (CrawlState.READY.value,)):
        super().__init__()
        self.script = list(script) or [CrawlState.READY.value]
        self.jobs: dict[str, CrawlJob] = {}
        self._progress: dict[str, int] = {}
        self.deleted: list[str] = []

    def create_crawl_job(self, job: CrawlJob) -> None:
        self._record("create_crawl_job", job.name)
        with self._lock:
            if job.name in self.jobs:
                raise ServiceError(
                    ALREADY_EXISTS, f"Crawler already exists: {job.name}", "create_crawl_job"
                )
            self.jobs[job.name] = replace(job, state=CrawlState.CREATED.value)

    def start_crawl_job(self, name: str) -> None:
        self._record("start_crawl_job", name)
        with self._lock:
            job = self._get(name, "start_crawl_job")
            job.state = CrawlState.RUNNING.value
            self._progress[name] = 0

    def get_crawl_job(self, name: str) -> CrawlJob:
        self._record("get_crawl_job", name)
        with self._lock:
            job = self._get(name, "get_crawl_job")
            if name in self._progress:
                step = self._progress[name]
                job.state = self.script[min(step, len(self.script) - 1)]
                self._progress[name] = step + 1
            return replace(job)

    def delete_crawl_job(self, name: str) -> None:
        self._record("delete_crawl_job", name)
        with self._lock:
            self._get(name, "delete_crawl_job")
            del self.jobs[name]
            self._progress.pop(name, None)
            self.deleted.append(name)

    def polls(self, name: str) -> int:
        with self._lock:
            return sum(1 for op, args in self.calls if op == "get_crawl_job" and args == (name,))

    def _get(self, name: str, operation: str) -> CrawlJob:
        job = self.jobs.get(name)
        if job is None:
            raise ServiceError(ENTITY_NOT_FOUND, f"Crawler {name} not found", operation)
        return job
