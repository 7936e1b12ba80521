"""⚙️ Configuration - Environment settings and the YAML mesh layout.

Two layers:
- `Settings`: environment-based (LAKESHARE_* variables), cached by get_settings()
- `MeshConfig`: the domains taking part in the mesh, loaded from mesh.yaml

Workflows never read either directly: entry points build a `WorkflowConfig`
and hand it to each workflow builder.

Example mesh.yaml:
    control_domain:
      domain_id: "111111111111"
      region: us-east-1
      admin_principal: arn:aws:iam::111111111111:role/LakeFormationAdmin

    domains:
      - domain_id: "222222222222"
        region: eu-west-1
        crawler_workflow: true

    products:
      - producer_domain_id: "222222222222"
        storage_location: producer-bucket/sales/
        database_name: sales
        tables: [orders, customers]
        owner_name: Sales Team
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError
from .products.models import DataProductRegistration

CrawlReadyPolicy = Literal["ready", "not_running"]

DEFAULT_EVENT_SOURCE = "com.central.stepfunction"


def control_channel_name(domain_id: str) -> str:
    return f"{domain_id}_centralEventBus"


def domain_channel_name(domain_id: str) -> str:
    return f"{domain_id}_dataDomainEventBus"


def domain_channel_arn(domain_id: str, region: str) -> str:
    return (
        f"arn:aws:events:{region}:{domain_id}"
        f":event-bus/{domain_channel_name(domain_id)}"
    )


def _default_registry_db() -> Path:
    return Path(os.getenv("DATA_DIR", "/data")) / "lakeshare.db"


class Settings(BaseSettings):
    """Environment-based settings."""

    model_config = SettingsConfigDict(env_prefix="LAKESHARE_", case_sensitive=False)

    control_domain_id: str = Field(default="")
    region: str = Field(default="us-east-1")
    admin_principal: str = Field(default="")
    event_source: str = Field(default=DEFAULT_EVENT_SOURCE)

    resource_link_prefix: str = Field(default="rl-")
    initial_delay_seconds: float = Field(default=15.0, ge=0)
    crawl_poll_seconds: float = Field(default=15.0, ge=0)
    crawl_max_concurrency: int = Field(default=2, ge=1)
    crawl_ready_policy: CrawlReadyPolicy = Field(default="ready")
    update_owner_on_existing_database: bool = Field(default=False)

    registry_db: Path = Field(default_factory=_default_registry_db)

    log_level: str = Field(default="info")
    log_json: bool = Field(default=False)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings from environment."""
    return Settings()


class ControlDomainConfig(BaseModel):
    """The control-plane domain."""

    domain_id: str
    region: str = "us-east-1"
    admin_principal: str = Field(description="Administrative principal for grants")
    channel: str | None = None

    @property
    def channel_name(self) -> str:
        return self.channel or control_channel_name(self.domain_id)


class DomainConfig(BaseModel):
    """A participant domain."""

    domain_id: str
    region: str = "us-east-1"
    channel: str | None = None
    admin_principal: str | None = Field(
        default=None,
        description="Local administrative principal (defaults to the control one)",
    )
    crawler_workflow: bool = Field(
        default=False,
        description="Run the metadata refresh workflow after each intake",
    )

    @property
    def channel_name(self) -> str:
        return self.channel or domain_channel_name(self.domain_id)

    @property
    def channel_arn(self) -> str:
        return domain_channel_arn(self.domain_id, self.region)


class MeshConfig(BaseModel):
    """Complete mesh configuration, loaded from mesh.yaml."""

    control_domain: ControlDomainConfig
    domains: list[DomainConfig] = Field(default_factory=list)
    products: list[DataProductRegistration] = Field(default_factory=list)

    @classmethod
    def from_yaml(cls, path: Path | str) -> MeshConfig:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"No mesh configuration found at {path}")
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to a YAML file."""
        with open(path, "w") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False, sort_keys=False)

    def get_domain(self, domain_id: str) -> DomainConfig:
        for domain in self.domains:
            if domain.domain_id == domain_id:
                return domain
        raise ConfigError(f"Domain '{domain_id}' is not part of the mesh")


@dataclass(frozen=True)
class WorkflowConfig:
    """Identifiers and tunables passed explicitly to every workflow builder."""

    control_domain_id: str
    admin_principal: str
    event_source: str = DEFAULT_EVENT_SOURCE
    resource_link_prefix: str = "rl-"
    initial_delay_seconds: float = 15.0
    crawl_poll_seconds: float = 15.0
    crawl_max_concurrency: int = 2
    crawl_ready_policy: CrawlReadyPolicy = "ready"
    update_owner_on_existing_database: bool = False

    def __post_init__(self) -> None:
        if not self.control_domain_id:
            raise ConfigError("control_domain_id is required")
        if not self.admin_principal:
            raise ConfigError("admin_principal is required")
        if self.crawl_max_concurrency < 1:
            raise ConfigError("crawl_max_concurrency must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **overrides) -> WorkflowConfig:
        settings = settings or get_settings()
        values = {
            "control_domain_id": settings.control_domain_id,
            "admin_principal": settings.admin_principal,
            "event_source": settings.event_source,
            "resource_link_prefix": settings.resource_link_prefix,
            "initial_delay_seconds": settings.initial_delay_seconds,
            "crawl_poll_seconds": settings.crawl_poll_seconds,
            "crawl_max_concurrency": settings.crawl_max_concurrency,
            "crawl_ready_policy": settings.crawl_ready_policy,
            "update_owner_on_existing_database": settings.update_owner_on_existing_database,
        }
        values.update(overrides)
        return cls(**values)

    @classmethod
    def from_mesh(
        cls,
        mesh: MeshConfig,
        settings: Settings | None = None,
        **overrides,
    ) -> WorkflowConfig:
        """Identifiers from the mesh file, tunables from the environment."""
        overrides.setdefault("control_domain_id", mesh.control_domain.domain_id)
        overrides.setdefault("admin_principal", mesh.control_domain.admin_principal)
        return cls.from_settings(settings, **overrides)
