"""📦 Data Product Models - What gets shared, and the records sharing produces."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class TableSpec(BaseModel):
    """A table of a data product, with optional catalog attributes."""

    name: str = Field(min_length=1, description="Table name in the product database")
    attributes: dict[str, str] = Field(
        default_factory=dict,
        description="Extra catalog parameters stored on the table",
    )


class DataProductRegistration(BaseModel):
    """Request to register a data product in the control-plane domain.

    The producer domain is also the recipient of every grant: the shared
    database is namespaced by it (`{producer_domain_id}_{database_name}`)
    and the completion event is addressed to it.

    Example:
        registration = DataProductRegistration(
            producer_domain_id="222222222222",
            storage_location="producer-bucket/sales/",
            database_name="sales",
            tables=[{"name": "orders"}, {"name": "customers"}],
            owner_name="Sales Team",
            pii_flag=False,
        )
    """

    producer_domain_id: str = Field(description="Domain receiving the grants")
    storage_location: str = Field(description="Bucket/prefix holding the product data")
    database_name: str = Field(description="Requested catalog database name")
    tables: list[TableSpec] = Field(min_length=1)
    owner_name: str = Field(default="", description="Owner display name")
    pii_flag: bool = Field(default=False)

    @field_validator("tables", mode="before")
    @classmethod
    def _coerce_table_names(cls, value: Any) -> Any:
        # Allow plain table names in YAML
        if isinstance(value, list):
            return [{"name": item} if isinstance(item, str) else item for item in value]
        return value

    @field_validator("storage_location")
    @classmethod
    def _strip_scheme(cls, value: str) -> str:
        return value[len("s3://"):] if value.startswith("s3://") else value

    @property
    def shared_database_name(self) -> str:
        """Name of the database created in the control-plane catalog."""
        return shared_database_name(self.producer_domain_id, self.database_name)

    @property
    def location_arn(self) -> str:
        return f"arn:aws:s3:::{self.storage_location}"

    @property
    def table_names(self) -> list[str]:
        return [table.name for table in self.tables]

    def to_input(self) -> dict[str, Any]:
        """Governance workflow input."""
        return self.model_dump()


def shared_database_name(recipient_domain_id: str, database_name: str) -> str:
    """Control-plane database name for a product shared with a domain."""
    return f"{recipient_domain_id}_{database_name}"


class InvitationStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


@dataclass
class ShareInvitation:
    """A pending cross-domain grant awaiting acceptance."""

    invitation_id: str
    sender_domain_id: str
    status: str = InvitationStatus.PENDING.value
    share_name: str = ""

    @property
    def is_pending(self) -> bool:
        return self.status == InvitationStatus.PENDING.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "invitation_id": self.invitation_id,
            "sender_domain_id": self.sender_domain_id,
            "status": self.status,
            "share_name": self.share_name,
        }


@dataclass(frozen=True)
class ResourceLink:
    """Local catalog alias for a table owned by another domain."""

    database_name: str
    name: str
    target_catalog_id: str
    target_database: str
    target_table: str


class CrawlState(str, Enum):
    CREATED = "CREATED"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    READY = "READY"


@dataclass
class CrawlJob:
    """Ephemeral metadata crawl job for one table."""

    name: str
    database_name: str
    tables: list[str]
    role: str
    state: str = CrawlState.CREATED.value
    schema_change_policy: dict[str, str] = field(
        default_factory=lambda: {
            "DeleteBehavior": "LOG",
            "UpdateBehavior": "UPDATE_IN_DATABASE",
        }
    )


def crawl_job_name(execution_id: str, database_name: str, table_name: str) -> str:
    """Deterministic crawl job name for an execution and table."""
    return f"{execution_id}_{database_name}_{table_name}"


def resource_link_name(prefix: str, table_name: str) -> str:
    return f"{prefix}{table_name}"


@dataclass
class ShareEvent:
    """Payload of the event the control plane sends to a participant."""

    database_name: str
    table_names: list[str]

    @classmethod
    def from_detail(cls, detail: dict[str, Any]) -> ShareEvent:
        return cls(
            database_name=detail["database_name"],
            table_names=list(detail.get("table_names", [])),
        )

    def to_detail(self) -> dict[str, Any]:
        return {"database_name": self.database_name, "table_names": list(self.table_names)}


def create_resource_links_detail_type(domain_id: str) -> str:
    """Detail type routing a share event to a participant domain."""
    return f"{domain_id}_createResourceLinks"
