"""🧪 Pytest configuration and shared fixtures."""

from pathlib import Path

import pytest

from lakeshare.config import WorkflowConfig
from lakeshare.products.models import DataProductRegistration
from lakeshare.services.base import ControlPlaneServices, DomainServices
from lakeshare.services.memory import (
    InMemoryCatalog,
    InMemoryCrawlers,
    InMemoryPermissions,
    InMemoryShares,
)
from lakeshare.workflow import Executor

CONTROL_ID = "111111111111"
DOMAIN_ID = "222222222222"
ADMIN = f"arn:aws:iam::{CONTROL_ID}:role/LakeFormationAdmin"


class RecordingPublisher:
    """EventPublisher keeping every published event."""

    def __init__(self):
        self.events: list[dict] = []

    def put_event(self, source, detail_type, detail):
        event_id = f"event-{len(self.events) + 1}"
        self.events.append(
            {"id": event_id, "source": source, "detail_type": detail_type, "detail": detail}
        )
        return event_id


@pytest.fixture(scope="session")
def project_root():
    """Get project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def sleeps():
    """Durations passed to the executor's sleep."""
    return []


@pytest.fixture
def executor(sleeps):
    """Executor that records waits instead of sleeping."""
    return Executor(sleep=sleeps.append)


@pytest.fixture
def config():
    """Workflow configuration for a control plane 111… and no delays."""
    return WorkflowConfig(
        control_domain_id=CONTROL_ID,
        admin_principal=ADMIN,
        initial_delay_seconds=15,
        crawl_poll_seconds=15,
    )


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def control_services(publisher):
    """Control-plane collaborators, all in memory."""
    return ControlPlaneServices(
        permissions=InMemoryPermissions(),
        catalog=InMemoryCatalog(),
        events=publisher,
    )


@pytest.fixture
def domain_services():
    """Participant collaborators with the `sales` database present."""
    return DomainServices(
        shares=InMemoryShares(),
        catalog=InMemoryCatalog(["sales"]),
        permissions=InMemoryPermissions(),
        crawlers=InMemoryCrawlers(),
    )


@pytest.fixture
def registration():
    """Sample data product registration."""
    return DataProductRegistration(
        producer_domain_id=DOMAIN_ID,
        storage_location="producer-bucket/sales/",
        database_name="sales",
        tables=["t1", "t2"],
        owner_name="Sales Team",
        pii_flag=True,
    )


@pytest.fixture
def sample_mesh_yaml(tmp_path):
    """A mesh.yaml with one participant domain and one product."""
    path = tmp_path / "mesh.yaml"
    path.write_text(
        f"""
control_domain:
  domain_id: "{CONTROL_ID}"
  region: us-east-1
  admin_principal: {ADMIN}

domains:
  - domain_id: "{DOMAIN_ID}"
    region: eu-west-1
    crawler_workflow: true

products:
  - producer_domain_id: "{DOMAIN_ID}"
    storage_location: s3://producer-bucket/sales/
    database_name: sales
    tables: [orders, customers]
    owner_name: Sales Team
"""
    )
    return path
