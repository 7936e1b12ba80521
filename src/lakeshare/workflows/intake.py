"""📥 Domain Intake Workflow - Accept a pending share and link its tables.

Triggered by the control plane's `{domain_id}_createResourceLinks` event:

    ListInvitations
          │
    AnyInvitations? ──(none)──────────────────────────────┐
          │                                               │
    ForEachInvitation                                     │
      └─ IsInvitationPending? ─► AcceptInvitation         │
                             └─► NotPending (no-op)       │
          │                                               │
    ShareAccepted? ──(no)─────────────────────────────────┤
          │                                               │
    ForEachTableCreateLink                                │
      └─ CreateResourceLink                               │
          │                                               │
    Finish ◄──────────────────────────────────────────────┘

Only the first accepted invitation gates link creation: callers must keep
at most one relevant invitation outstanding per sender. A resource-link
that already exists fails the execution.
"""

from __future__ import annotations

from typing import Any

from lakeshare.config import WorkflowConfig
from lakeshare.products.models import (
    InvitationStatus,
    ResourceLink,
    resource_link_name,
    shared_database_name,
)
from lakeshare.services.base import DomainServices
from lakeshare.workflow import (
    Call,
    Choice,
    Execution,
    Executor,
    FanOut,
    Pass,
    StateMachine,
    Terminal,
)

INTAKE_WORKFLOW = "CreateResourceLinks"


def _is_pending_from_origin(data: dict[str, Any]) -> bool:
    invitation = data["invitation"]
    return (
        invitation["sender_domain_id"] == data["origin_domain_id"]
        and invitation["status"] == InvitationStatus.PENDING.value
    )


def first_share_accepted(data: dict[str, Any]) -> bool:
    """Gate on the first non-empty invitation branch result."""
    results = [result for result in data.get("invitation_results", []) if result]
    if not results:
        return False
    response = results[0].get("response") or {}
    return response.get("status") == InvitationStatus.ACCEPTED.value


def build_invitation_branch(services: DomainServices) -> StateMachine:
    def accept_invitation(data: dict, execution: Execution) -> Any:
        return services.shares.accept_invitation(data["invitation"]["invitation_id"])

    return StateMachine(
        "ForEachInvitationBranch",
        start_at="IsInvitationPending",
        states=[
            Choice(
                "IsInvitationPending",
                choices=[(_is_pending_from_origin, "AcceptInvitation")],
                default="NotPending",
            ),
            Call(
                "AcceptInvitation",
                accept_invitation,
                next="InvitationHandled",
                result_path="response",
                result_selector=lambda invitation: {"status": invitation.status},
            ),
            Pass("NotPending", next="InvitationHandled", transform=lambda data: {}),
            Terminal("InvitationHandled"),
        ],
    )


def build_link_branch(
    config: WorkflowConfig,
    services: DomainServices,
) -> StateMachine:
    def create_resource_link(data: dict, execution: Execution) -> str:
        link = ResourceLink(
            database_name=data["database_name"],
            name=resource_link_name(config.resource_link_prefix, data["table_name"]),
            target_catalog_id=config.control_domain_id,
            target_database=data["shared_database_name"],
            target_table=data["table_name"],
        )
        services.catalog.create_resource_link(link)
        return link.name

    return StateMachine(
        "ForEachTableCreateLinkBranch",
        start_at="CreateResourceLink",
        states=[
            Call(
                "CreateResourceLink",
                create_resource_link,
                next="LinkCreated",
                result_path="link_name",
            ),
            Terminal("LinkCreated", output=lambda data: data["link_name"]),
        ],
    )


def build_intake_workflow(
    domain_id: str,
    config: WorkflowConfig,
    services: DomainServices,
) -> StateMachine:
    """Build the intake state machine for participant domain `domain_id`.

    The input is the delivered event: `{"account": <origin domain>,
    "detail": {"database_name": ..., "table_names": [...]}, ...}`.
    """

    def list_invitations(data: dict, execution: Execution) -> list[dict]:
        return [inv.to_dict() for inv in services.shares.list_invitations()]

    def invitation_input(data: dict, invitation: dict) -> dict:
        return {"invitation": invitation, "origin_domain_id": data["account"]}

    def link_input(data: dict, table_name: str) -> dict:
        database_name = data["detail"]["database_name"]
        return {
            "database_name": database_name,
            "shared_database_name": shared_database_name(domain_id, database_name),
            "table_name": table_name,
        }

    return StateMachine(
        INTAKE_WORKFLOW,
        start_at="ListInvitations",
        states=[
            Call(
                "ListInvitations",
                list_invitations,
                next="AnyInvitations",
                result_path="invitations",
            ),
            Choice(
                "AnyInvitations",
                choices=[(lambda data: bool(data["invitations"]), "ForEachInvitation")],
                default="Finish",
            ),
            FanOut(
                "ForEachInvitation",
                items=lambda data: data["invitations"],
                item_input=invitation_input,
                branch=build_invitation_branch(services),
                next="ShareAccepted",
                result_path="invitation_results",
            ),
            Choice(
                "ShareAccepted",
                choices=[(first_share_accepted, "ForEachTableCreateLink")],
                default="Finish",
            ),
            FanOut(
                "ForEachTableCreateLink",
                items=lambda data: data["detail"].get("table_names", []),
                item_input=link_input,
                branch=build_link_branch(config, services),
                next="Finish",
                result_path="resource_links",
            ),
            Terminal("Finish"),
        ],
    )


class IntakeWorkflow:
    """Runs share intake for one participant domain.

    Example:
        workflow = IntakeWorkflow("222222222222", config, services)
        execution = workflow.run(event.to_dict())
    """

    def __init__(
        self,
        domain_id: str,
        config: WorkflowConfig,
        services: DomainServices,
        executor: Executor | None = None,
    ):
        self.domain_id = domain_id
        self.executor = executor or Executor()
        self.machine = build_intake_workflow(domain_id, config, services)

    def run(self, event: dict[str, Any]) -> Execution:
        return self.executor.start(self.machine, event)
