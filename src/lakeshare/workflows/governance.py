"""🏛️ Governance Workflow - Register a data product in the control-plane domain.

    RegisterLocation ──(AlreadyExists)──┐
          │                             │
    GrantAdminAccess ◄──────────────────┘
          │
    GrantRecipientAccess
          │
    CreateDatabase ──(AlreadyExists)──────────────┐
          │                                       │
    UpdateOwnerMetadata                           │
          │                                       │
    ForEachTable ◄────────────────────────────────┘
      └─ CreateTable ──(AlreadyExists)─┐
           │                           │
         GrantTablePermissions ◄───────┘
          │
    EmitCompletionEvent ─► Done

The catalog database is namespaced by the recipient domain:
`{producer_domain_id}_{database_name}`. The completion event is addressed
to that domain with the flattened list of table names.
"""

from __future__ import annotations

from typing import Any

from lakeshare.config import WorkflowConfig
from lakeshare.errors import ALREADY_EXISTS
from lakeshare.products.models import (
    DataProductRegistration,
    ShareEvent,
    create_resource_links_detail_type,
    shared_database_name,
)
from lakeshare.services.base import (
    ALL,
    DATA_LOCATION_ACCESS,
    ControlPlaneServices,
    Grant,
    LocationResource,
    TableResource,
)
from lakeshare.workflow import Call, Execution, Executor, FanOut, StateMachine, Terminal

GOVERNANCE_WORKFLOW = "RegisterDataProduct"


def _location_arn(data: dict[str, Any]) -> str:
    return f"arn:aws:s3:::{data['storage_location']}"


def _database(data: dict[str, Any]) -> str:
    return shared_database_name(data["producer_domain_id"], data["database_name"])


def build_table_branch(services: ControlPlaneServices) -> StateMachine:
    """Per-table branch: create the table, then grant it to the recipient."""

    def create_table(data: dict, execution: Execution) -> None:
        table = data["table"]
        services.catalog.create_table(
            data["shared_database_name"],
            table["name"],
            parameters=table.get("attributes") or None,
        )

    def grant_table_permissions(data: dict, execution: Execution) -> None:
        services.permissions.grant_permissions(
            Grant(
                principal=data["producer_domain_id"],
                resource=TableResource(data["shared_database_name"], data["table"]["name"]),
                permissions=(ALL,),
                grantable=(ALL,),
            )
        )

    return StateMachine(
        "ForEachTableBranch",
        start_at="CreateTable",
        states=[
            Call(
                "CreateTable",
                create_table,
                next="GrantTablePermissions",
                catch={ALREADY_EXISTS: "GrantTablePermissions"},
            ),
            Call("GrantTablePermissions", grant_table_permissions, next="TableShared"),
            Terminal("TableShared", output=lambda data: data["table"]["name"]),
        ],
    )


def build_governance_workflow(
    config: WorkflowConfig,
    services: ControlPlaneServices,
) -> StateMachine:
    """Build the data product registration state machine."""

    def register_location(data: dict, execution: Execution) -> None:
        services.permissions.register_location(_location_arn(data), config.admin_principal)

    def grant_admin_access(data: dict, execution: Execution) -> None:
        services.permissions.grant_permissions(
            Grant(
                principal=config.admin_principal,
                resource=LocationResource(_location_arn(data)),
                permissions=(DATA_LOCATION_ACCESS,),
            )
        )

    def grant_recipient_access(data: dict, execution: Execution) -> None:
        services.permissions.grant_permissions(
            Grant(
                principal=data["producer_domain_id"],
                resource=LocationResource(_location_arn(data)),
                permissions=(DATA_LOCATION_ACCESS,),
            )
        )

    def create_database(data: dict, execution: Execution) -> None:
        services.catalog.create_database(
            _database(data),
            description=(
                f"Data product for {data['storage_location']} "
                f"in producer domain {data['producer_domain_id']}"
            ),
        )

    def update_owner_metadata(data: dict, execution: Execution) -> None:
        services.catalog.update_database(
            _database(data),
            {
                "data_owner": data["producer_domain_id"],
                "data_owner_name": data.get("owner_name", ""),
                "pii_flag": str(bool(data.get("pii_flag", False))).lower(),
            },
        )

    def emit_completion_event(data: dict, execution: Execution) -> str:
        event = ShareEvent(data["database_name"], data["table_names"])
        return services.events.put_event(
            source=config.event_source,
            detail_type=create_resource_links_detail_type(data["producer_domain_id"]),
            detail=event.to_detail(),
        )

    # The owner metadata update is skipped for pre-existing databases unless configured
    on_existing_database = (
        "UpdateOwnerMetadata" if config.update_owner_on_existing_database else "ForEachTable"
    )

    return StateMachine(
        GOVERNANCE_WORKFLOW,
        start_at="RegisterLocation",
        states=[
            Call(
                "RegisterLocation",
                register_location,
                next="GrantAdminAccess",
                catch={ALREADY_EXISTS: "GrantAdminAccess"},
            ),
            Call("GrantAdminAccess", grant_admin_access, next="GrantRecipientAccess"),
            Call("GrantRecipientAccess", grant_recipient_access, next="CreateDatabase"),
            Call(
                "CreateDatabase",
                create_database,
                next="UpdateOwnerMetadata",
                catch={ALREADY_EXISTS: on_existing_database},
            ),
            Call("UpdateOwnerMetadata", update_owner_metadata, next="ForEachTable"),
            FanOut(
                "ForEachTable",
                items=lambda data: data["tables"],
                item_input=lambda data, table: {
                    "producer_domain_id": data["producer_domain_id"],
                    "database_name": data["database_name"],
                    "shared_database_name": _database(data),
                    "table": table,
                },
                branch=build_table_branch(services),
                next="EmitCompletionEvent",
                result_path="table_names",
            ),
            Call(
                "EmitCompletionEvent",
                emit_completion_event,
                next="Done",
                result_path="event_id",
            ),
            Terminal("Done"),
        ],
    )


class GovernanceWorkflow:
    """Runs data product registrations in the control-plane domain.

    Example:
        workflow = GovernanceWorkflow(config, services)
        execution = workflow.run(registration)
        execution.output["table_names"]  # ["orders", "customers"]
    """

    def __init__(
        self,
        config: WorkflowConfig,
        services: ControlPlaneServices,
        executor: Executor | None = None,
    ):
        self.config = config
        self.services = services
        self.executor = executor or Executor()
        self.machine = build_governance_workflow(config, services)

    def run(self, registration: DataProductRegistration | dict[str, Any]) -> Execution:
        if isinstance(registration, dict):
            registration = DataProductRegistration(**registration)
        return self.executor.start(self.machine, registration.to_input())
