"""🔄 Metadata Refresh Workflow - Crawl newly linked tables.

Triggered by a successful intake execution; its input carries the intake
input serialized as a JSON string.

    WaitForMetadata ─► ParseEventPayload ─► ForEachTable (max 2 at a time)
                                              └─ GrantAllPermissions
                                                 CreateCrawlJob
                                                 StartCrawlJob
                                                 WaitForCrawlJob ◄──────┐
                                                 GetCrawlJob            │
                                                 CrawlJobReady? ──(no)──┘
                                                 DeleteCrawlJob
                                              ─► Done

Polling has no upper bound: a crawl job that never becomes ready blocks
its branch, and so the whole execution, indefinitely.
"""

from __future__ import annotations

import json
from typing import Any, Callable

from lakeshare.config import CrawlReadyPolicy, WorkflowConfig
from lakeshare.errors import ConfigError
from lakeshare.products.models import CrawlJob, CrawlState, crawl_job_name, resource_link_name
from lakeshare.services.base import ALL, DomainServices, Grant, TableResource
from lakeshare.workflow import (
    Call,
    Choice,
    Execution,
    Executor,
    FanOut,
    Pass,
    StateMachine,
    Terminal,
    Wait,
)

REFRESH_WORKFLOW = "UpdateTableSchemas"

READY_POLICIES: dict[str, Callable[[str], bool]] = {
    "ready": lambda state: state == CrawlState.READY.value,
    "not_running": lambda state: state != CrawlState.RUNNING.value,
}


def ready_predicate(policy: CrawlReadyPolicy) -> Callable[[str], bool]:
    try:
        return READY_POLICIES[policy]
    except KeyError:
        raise ConfigError(
            f"Unknown crawl ready policy '{policy}'. Choose from {sorted(READY_POLICIES)}"
        ) from None


def parse_event_payload(data: dict[str, Any]) -> dict[str, Any]:
    """Re-parse the intake input carried by the completion signal."""
    raw = data["detail"]["input"]
    payload = json.loads(raw) if isinstance(raw, str) else raw
    return {"payload": payload, "execution_input": data}


def build_crawl_branch(
    principal: str,
    config: WorkflowConfig,
    services: DomainServices,
) -> StateMachine:
    """Per-table branch: grant, crawl until ready, then tear the job down."""
    crawlers = services.crawlers
    if crawlers is None:
        raise ConfigError("The metadata refresh workflow needs a crawler service")

    is_ready = ready_predicate(config.crawl_ready_policy)

    def job_name(data: dict, execution: Execution) -> str:
        return crawl_job_name(execution.execution_id, data["database_name"], data["table_name"])

    def grant_all_permissions(data: dict, execution: Execution) -> None:
        services.permissions.grant_permissions(
            Grant(
                principal=principal,
                resource=TableResource(data["database_name"], data["table_name"]),
                permissions=(ALL,),
            )
        )

    def create_crawl_job(data: dict, execution: Execution) -> str:
        name = job_name(data, execution)
        crawlers.create_crawl_job(
            CrawlJob(
                name=name,
                database_name=data["database_name"],
                tables=[data["table_name"]],
                role=principal,
            )
        )
        return name

    def start_crawl_job(data: dict, execution: Execution) -> None:
        crawlers.start_crawl_job(data["crawl_job_name"])

    def get_crawl_job(data: dict, execution: Execution) -> CrawlJob:
        return crawlers.get_crawl_job(data["crawl_job_name"])

    def delete_crawl_job(data: dict, execution: Execution) -> None:
        crawlers.delete_crawl_job(data["crawl_job_name"])

    return StateMachine(
        "ForEachTableBranch",
        start_at="GrantAllPermissions",
        states=[
            Call("GrantAllPermissions", grant_all_permissions, next="CreateCrawlJob"),
            Call(
                "CreateCrawlJob",
                create_crawl_job,
                next="StartCrawlJob",
                result_path="crawl_job_name",
            ),
            Call("StartCrawlJob", start_crawl_job, next="WaitForCrawlJob"),
            Wait("WaitForCrawlJob", seconds=config.crawl_poll_seconds, next="GetCrawlJob"),
            Call(
                "GetCrawlJob",
                get_crawl_job,
                next="CrawlJobReady",
                result_path="crawl_state",
                result_selector=lambda job: job.state,
            ),
            Choice(
                "CrawlJobReady",
                choices=[(lambda data: is_ready(data["crawl_state"]), "DeleteCrawlJob")],
                default="WaitForCrawlJob",
            ),
            Call("DeleteCrawlJob", delete_crawl_job, next="TableRefreshed"),
            Terminal("TableRefreshed", output=lambda data: data["table_name"]),
        ],
    )


def build_refresh_workflow(
    config: WorkflowConfig,
    services: DomainServices,
    admin_principal: str | None = None,
) -> StateMachine:
    """Build the metadata refresh state machine.

    Args:
        config: Workflow identifiers and tunables
        services: Domain collaborators (crawlers required)
        admin_principal: Local principal granted on each link
            (defaults to config.admin_principal)
    """
    principal = admin_principal or config.admin_principal

    def table_input(data: dict, table_name: str) -> dict:
        return {
            "table_name": resource_link_name(config.resource_link_prefix, table_name),
            "database_name": data["payload"]["detail"]["database_name"],
        }

    return StateMachine(
        REFRESH_WORKFLOW,
        start_at="WaitForMetadata",
        states=[
            Wait("WaitForMetadata", seconds=config.initial_delay_seconds, next="ParseEventPayload"),
            Pass("ParseEventPayload", next="ForEachTable", transform=parse_event_payload),
            FanOut(
                "ForEachTable",
                items=lambda data: data["payload"]["detail"].get("table_names", []),
                item_input=table_input,
                branch=build_crawl_branch(principal, config, services),
                max_concurrency=config.crawl_max_concurrency,
                next="Done",
                result_path="refreshed_tables",
            ),
            Terminal("Done"),
        ],
    )


class RefreshWorkflow:
    def __init__(
        self,
        config: WorkflowConfig,
        services: DomainServices,
        admin_principal: str | None = None,
        executor: Executor | None = None,
    ):
        self.executor = executor or Executor()
        self.machine = build_refresh_workflow(config, services, admin_principal)

    def run(self, signal: dict[str, Any]) -> Execution:
        return self.executor.start(self.machine, signal)
