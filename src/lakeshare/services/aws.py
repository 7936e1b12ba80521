"""☁️ AWS Services - boto3-backed collaborators.

    RamShares                 share invitations (AWS RAM)
    LakeFormationPermissions  location registration and grants
    GlueCatalog               databases, tables, resource-links
    GlueCrawlers              metadata crawl jobs
    EventBridgeChannel        event publishing

botocore `ClientError`s are translated to `ServiceError` kinds so the
workflows can route on them (`AlreadyExistsException` → `AlreadyExists`).
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError

from lakeshare.errors import AWS_ERROR_KINDS, ServiceError
from lakeshare.products.models import CrawlJob, ResourceLink, ShareInvitation

from .base import Grant, LocationResource, TableResource


def get_client(service: str, region: str | None = None, **kwargs: Any):
    """Get a boto3 client with standard retries."""
    return boto3.client(
        service,
        region_name=region,
        config=Config(retries={"max_attempts": 5, "mode": "standard"}),
        **kwargs,
    )


def call_aws(operation: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
    try:
        return fn(**kwargs)
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code", "Unknown")
        message = e.response.get("Error", {}).get("Message", str(e))
        raise ServiceError(AWS_ERROR_KINDS.get(code, code), message, operation) from e


class RamShares:
    """Resource share invitations received by this domain."""

    def __init__(self, client=None, region: str | None = None):
        self.client = client or get_client("ram", region)

    def list_invitations(self) -> list[ShareInvitation]:
        invitations: list[ShareInvitation] = []
        kwargs: dict[str, Any] = {}
        while True:
            response = call_aws(
                "list_invitations", self.client.get_resource_share_invitations, **kwargs
            )
            for item in response.get("resourceShareInvitations", []):
                invitations.append(
                    ShareInvitation(
                        invitation_id=item["resourceShareInvitationArn"],
                        sender_domain_id=item.get("senderAccountId", ""),
                        status=item.get("status", ""),
                        share_name=item.get("resourceShareName", ""),
                    )
                )
            token = response.get("nextToken")
            if not token:
                return invitations
            kwargs["nextToken"] = token

    def accept_invitation(self, invitation_id: str) -> ShareInvitation:
        response = call_aws(
            "accept_invitation",
            self.client.accept_resource_share_invitation,
            resourceShareInvitationArn=invitation_id,
        )
        item = response["resourceShareInvitation"]
        return ShareInvitation(
            invitation_id=item.get("resourceShareInvitationArn", invitation_id),
            sender_domain_id=item.get("senderAccountId", ""),
            status=item.get("status", ""),
            share_name=item.get("resourceShareName", ""),
        )


class LakeFormationPermissions:
    def __init__(self, client=None, region: str | None = None):
        self.client = client or get_client("lakeformation", region)

    def register_location(self, location_arn: str, role: str) -> None:
        call_aws(
            "register_location",
            self.client.register_resource,
            ResourceArn=location_arn,
            RoleArn=role,
        )

    def grant_permissions(self, grant: Grant) -> None:
        kwargs: dict[str, Any] = {
            "Principal": {"DataLakePrincipalIdentifier": grant.principal},
            "Resource": _lf_resource(grant.resource),
            "Permissions": list(grant.permissions),
        }
        if grant.grantable:
            kwargs["PermissionsWithGrantOption"] = list(grant.grantable)
        call_aws("grant_permissions", self.client.grant_permissions, **kwargs)


def _lf_resource(resource: LocationResource | TableResource) -> dict[str, Any]:
    if isinstance(resource, LocationResource):
        return {"DataLocation": {"ResourceArn": resource.arn}}
    return {"Table": {"DatabaseName": resource.database_name, "Name": resource.table_name}}


class GlueCatalog:
    def __init__(self, client=None, region: str | None = None):
        self.client = client or get_client("glue", region)

    def create_database(self, name: str, description: str = "") -> None:
        call_aws(
            "create_database",
            self.client.create_database,
            DatabaseInput={"Name": name, "Description": description},
        )

    def update_database(self, name: str, parameters: dict[str, str]) -> None:
        call_aws(
            "update_database",
            self.client.update_database,
            Name=name,
            DatabaseInput={"Name": name, "Parameters": dict(parameters)},
        )

    def create_table(
        self,
        database_name: str,
        table_name: str,
        parameters: dict[str, str] | None = None,
    ) -> None:
        table_input: dict[str, Any] = {"Name": table_name}
        if parameters:
            table_input["Parameters"] = dict(parameters)
        call_aws(
            "create_table",
            self.client.create_table,
            DatabaseName=database_name,
            TableInput=table_input,
        )

    def create_resource_link(self, link: ResourceLink) -> None:
        call_aws(
            "create_resource_link",
            self.client.create_table,
            DatabaseName=link.database_name,
            TableInput={
                "Name": link.name,
                "TargetTable": {
                    "CatalogId": link.target_catalog_id,
                    "DatabaseName": link.target_database,
                    "Name": link.target_table,
                },
            },
        )


class GlueCrawlers:
    def __init__(self, client=None, region: str | None = None):
        self.client = client or get_client("glue", region)

    def create_crawl_job(self, job: CrawlJob) -> None:
        call_aws(
            "create_crawl_job",
            self.client.create_crawler,
            Name=job.name,
            Role=job.role,
            Targets={
                "CatalogTargets": [
                    {"DatabaseName": job.database_name, "Tables": list(job.tables)}
                ]
            },
            SchemaChangePolicy=dict(job.schema_change_policy),
        )

    def start_crawl_job(self, name: str) -> None:
        call_aws("start_crawl_job", self.client.start_crawler, Name=name)

    def get_crawl_job(self, name: str) -> CrawlJob:
        response = call_aws("get_crawl_job", self.client.get_crawler, Name=name)
        crawler = response["Crawler"]
        targets = crawler.get("Targets", {}).get("CatalogTargets", [{}])
        target = targets[0] if targets else {}
        return CrawlJob(
            name=crawler["Name"],
            database_name=target.get("DatabaseName", ""),
            tables=list(target.get("Tables", [])),
            role=crawler.get("Role", ""),
            state=crawler.get("State", ""),
        )

    def delete_crawl_job(self, name: str) -> None:
        call_aws("delete_crawl_job", self.client.delete_crawler, Name=name)


class EventBridgeChannel:
    """Publishes events on one EventBridge bus."""

    def __init__(self, bus_name: str, client=None, region: str | None = None):
        self.bus_name = bus_name
        self.client = client or get_client("events", region)

    def put_event(self, source: str, detail_type: str, detail: dict[str, Any]) -> str:
        response = call_aws(
            "put_event",
            self.client.put_events,
            Entries=[
                {
                    "Source": source,
                    "DetailType": detail_type,
                    "Detail": json.dumps(detail),
                    "EventBusName": self.bus_name,
                }
            ],
        )
        entry = response["Entries"][0]
        if response.get("FailedEntryCount", 0) or "ErrorCode" in entry:
            raise ServiceError(
                entry.get("ErrorCode", "PutEventsFailed"),
                entry.get("ErrorMessage", "Event was not accepted"),
                "put_event",
            )
        return entry["EventId"]
