"""🌐 Local Mesh - A control plane and participant domains wired over the bus.

    ControlPlane                         ParticipantDomain
    ───────────                          ─────────────────
    submit(registration)                 DataDomainRule
      └─ governance workflow               └─ intake workflow
           └─ EmitCompletionEvent ──────────►   └─ status-change event
              (routed by registry)                  └─ TriggerUpdateTableSchemasRule
                                                          └─ refresh workflow

Each arrow is a queued delivery: a workflow finishes before the workflows
its events trigger start. Everything runs in-process against the in-memory
services, which makes a whole mesh reproducible from a mesh.yaml
(`lakeshare simulate`).
"""

from __future__ import annotations

import threading
import uuid
from typing import Any

import structlog

from lakeshare.config import ControlDomainConfig, DomainConfig, MeshConfig, WorkflowConfig
from lakeshare.products.models import (
    DataProductRegistration,
    InvitationStatus,
    ShareInvitation,
    create_resource_links_detail_type,
)
from lakeshare.services.base import (
    ControlPlaneServices,
    DomainServices,
    Grant,
    PermissionService,
    TableResource,
)
from lakeshare.services.memory import (
    InMemoryCatalog,
    InMemoryCrawlers,
    InMemoryPermissions,
    InMemoryShares,
)
from lakeshare.workflow import SUCCEEDED, Execution, Executor
from lakeshare.workflows import (
    INTAKE_WORKFLOW,
    GovernanceWorkflow,
    IntakeWorkflow,
    RefreshWorkflow,
)

from .bus import ChannelPublisher, MeshEventBus
from .events import (
    EXECUTION_STATUS_CHANGE,
    WORKFLOW_EVENT_SOURCE,
    EventPattern,
    MeshEvent,
    execution_status_event,
)
from .registration import Handshake, register_domain
from .registry import TrustRegistry

logger = structlog.get_logger(__name__)

DATA_DOMAIN_RULE = "DataDomainRule"
REFRESH_RULE = "TriggerUpdateTableSchemasRule"


class CrossDomainSharing:
    """Permission service that issues share invitations for cross-domain grants.

    A table grant to a participant domain creates one pending invitation
    per shared database on that domain, the way cross-account grants do.
    """

    def __init__(self, permissions: PermissionService, owner_domain_id: str, region: str):
        self.permissions = permissions
        self.owner_domain_id = owner_domain_id
        self.region = region
        self.shares: dict[str, InMemoryShares] = {}
        self._shared: set[tuple[str, str]] = set()
        self._lock = threading.Lock()

    def attach(self, domain_id: str, shares: InMemoryShares) -> None:
        self.shares[domain_id] = shares

    def register_location(self, location_arn: str, role: str) -> None:
        self.permissions.register_location(location_arn, role)

    def grant_permissions(self, grant: Grant) -> None:
        self.permissions.grant_permissions(grant)

        shares = self.shares.get(grant.principal)
        if shares is None or not isinstance(grant.resource, TableResource):
            return

        key = (grant.principal, grant.resource.database_name)
        with self._lock:
            if key in self._shared:
                return
            self._shared.add(key)

        invitation = ShareInvitation(
            invitation_id=(
                f"arn:aws:ram:{self.region}:{self.owner_domain_id}"
                f":resource-share-invitation/{uuid.uuid4()}"
            ),
            sender_domain_id=self.owner_domain_id,
            status=InvitationStatus.PENDING.value,
            share_name=grant.resource.database_name,
        )
        shares.invite(invitation)
        logger.debug(
            "share_invited",
            recipient=grant.principal,
            database=grant.resource.database_name,
        )


class ControlPlane:
    """The control-plane domain: registers domains and data products."""

    def __init__(
        self,
        control: ControlDomainConfig,
        config: WorkflowConfig,
        bus: MeshEventBus,
        executor: Executor | None = None,
    ):
        self.control = control
        self.config = config
        self.bus = bus
        self.registry = bus.registry
        self.channel = bus.create_channel(control.channel_name, owner=control.domain_id)

        self.catalog = InMemoryCatalog()
        self.permissions = InMemoryPermissions()
        self.sharing = CrossDomainSharing(self.permissions, control.domain_id, control.region)
        self.services = ControlPlaneServices(
            permissions=self.sharing,
            catalog=self.catalog,
            events=ChannelPublisher(bus, control.channel_name, control.domain_id, control.region),
        )
        self.governance = GovernanceWorkflow(config, self.services, executor)
        self.executions: list[Execution] = []

    def register_domain(self, domain: ParticipantDomain | DomainConfig) -> Handshake:
        if isinstance(domain, ParticipantDomain):
            self.sharing.attach(domain.domain_id, domain.shares)
            domain = domain.config
        return register_domain(self.registry, self.control, domain, self.config.event_source)

    def submit(self, registration: DataProductRegistration | dict[str, Any]) -> Execution:
        """Run the governance workflow for one data product.

        The workflows it triggers in participant domains run after it has
        finished, when the bus is drained.
        """
        execution = self.governance.run(registration)
        self.executions.append(execution)
        self.bus.drain()
        return execution


class ParticipantDomain:
    """A participant domain reacting to events on its own channel."""

    def __init__(
        self,
        domain: DomainConfig,
        config: WorkflowConfig,
        bus: MeshEventBus,
        services: DomainServices | None = None,
        executor: Executor | None = None,
    ):
        self.config = domain
        self.workflow_config = config
        self.bus = bus
        self.channel = bus.create_channel(domain.channel_name, owner=domain.domain_id)

        self.services = services or DomainServices(
            shares=InMemoryShares(),
            catalog=InMemoryCatalog(),
            permissions=InMemoryPermissions(),
            crawlers=InMemoryCrawlers() if domain.crawler_workflow else None,
        )
        self.executor = executor or Executor()
        self.executor.add_listener(self._emit_status_change)
        self._executions: list[Execution] = []

        self.intake = IntakeWorkflow(domain.domain_id, config, self.services, self.executor)
        self.channel.put_rule(
            DATA_DOMAIN_RULE,
            EventPattern(
                source=(config.event_source,),
                account=(config.control_domain_id,),
                detail_type=(create_resource_links_detail_type(domain.domain_id),),
            ),
            self._on_share_event,
        )

        self.refresh: RefreshWorkflow | None = None
        if domain.crawler_workflow:
            self.refresh = RefreshWorkflow(
                config,
                self.services,
                admin_principal=domain.admin_principal,
                executor=self.executor,
            )
            self.channel.put_rule(
                REFRESH_RULE,
                EventPattern(
                    source=(WORKFLOW_EVENT_SOURCE,),
                    detail_type=(EXECUTION_STATUS_CHANGE,),
                    detail=(("status", (SUCCEEDED,)), ("workflow", (INTAKE_WORKFLOW,))),
                ),
                self._on_intake_succeeded,
            )

    @property
    def domain_id(self) -> str:
        return self.config.domain_id

    @property
    def shares(self) -> InMemoryShares:
        return self.services.shares

    def executions(self, workflow: str | None = None) -> list[Execution]:
        if workflow is None:
            return list(self._executions)
        return [e for e in self._executions if e.workflow == workflow]

    def _on_share_event(self, event: MeshEvent) -> None:
        self.intake.run(event.to_dict())

    def _on_intake_succeeded(self, event: MeshEvent) -> None:
        self.refresh.run(event.to_dict())

    def _emit_status_change(self, execution: Execution) -> None:
        self._executions.append(execution)
        event = execution_status_event(execution, self.domain_id, self.config.region)
        self.bus.put_event(self.config.channel_name, event)


class LocalMesh:
    """A complete mesh built from a MeshConfig.

    Example:
        mesh = LocalMesh.from_config(MeshConfig.from_yaml("mesh.yaml"), sleep=lambda s: None)
        mesh.register_all()
        for execution in mesh.publish_all():
            print(execution.status)
    """

    def __init__(self, mesh: MeshConfig, config: WorkflowConfig, executor_factory=None):
        executor_factory = executor_factory or Executor
        self.mesh = mesh
        self.bus = MeshEventBus(TrustRegistry(":memory:"))
        self.control = ControlPlane(mesh.control_domain, config, self.bus, executor_factory())

        self.domains: dict[str, ParticipantDomain] = {}
        for domain in mesh.domains:
            databases = [
                p.database_name for p in mesh.products if p.producer_domain_id == domain.domain_id
            ]
            services = DomainServices(
                shares=InMemoryShares(),
                catalog=InMemoryCatalog(databases),
                permissions=InMemoryPermissions(),
                crawlers=InMemoryCrawlers() if domain.crawler_workflow else None,
            )
            self.domains[domain.domain_id] = ParticipantDomain(
                domain, config, self.bus, services, executor_factory()
            )

    @classmethod
    def from_config(cls, mesh: MeshConfig, sleep=None, **overrides) -> LocalMesh:
        config = WorkflowConfig.from_mesh(mesh, **overrides)
        if sleep is None:
            return cls(mesh, config)
        return cls(mesh, config, executor_factory=lambda: Executor(sleep=sleep))

    def register_all(self) -> list[Handshake]:
        return [self.control.register_domain(domain) for domain in self.domains.values()]

    def publish_all(self) -> list[Execution]:
        return [self.control.submit(product) for product in self.mesh.products]
