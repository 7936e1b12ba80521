"""🧪 Tests for the event bus and the local mesh runtime."""

import json

import pytest

from lakeshare.config import ControlDomainConfig, DomainConfig, MeshConfig, WorkflowConfig
from lakeshare.errors import ACCESS_DENIED
from lakeshare.mesh import (
    EXECUTION_STATUS_CHANGE,
    ControlPlane,
    EventPattern,
    LocalMesh,
    MeshEvent,
    MeshEventBus,
    ParticipantDomain,
    TrustRegistry,
)
from lakeshare.products.models import InvitationStatus, ShareInvitation
from lakeshare.workflow import FAILED, SUCCEEDED, Executor
from lakeshare.workflows import GOVERNANCE_WORKFLOW, INTAKE_WORKFLOW, REFRESH_WORKFLOW

CONTROL_ID = "111111111111"
DOMAIN_ID = "222222222222"
ADMIN = f"arn:aws:iam::{CONTROL_ID}:role/LakeFormationAdmin"


@pytest.fixture
def bus():
    return MeshEventBus(TrustRegistry(":memory:"))


def event(account, detail_type="ping", source="test", **detail):
    return MeshEvent(source=source, detail_type=detail_type, detail=detail, account=account)


class TestEventPattern:
    """Tests for EventPattern matching."""

    def test_empty_pattern_matches_anything(self):
        assert EventPattern().matches(event("x"))

    def test_all_criteria_must_hold(self):
        pattern = EventPattern(source=("test",), account=("a",), detail=(("status", ("SUCCEEDED",)),))

        assert pattern.matches(event("a", status="SUCCEEDED"))
        assert not pattern.matches(event("b", status="SUCCEEDED"))
        assert not pattern.matches(event("a", status="FAILED"))
        assert not pattern.matches(event("a"))

    def test_eventbridge_document_round_trip(self):
        pattern = EventPattern(source=("s",), detail_type=("d",), detail=(("k", ("v",)),))

        document = pattern.to_dict()

        assert document == {"source": ["s"], "detail-type": ["d"], "detail": {"k": ["v"]}}
        assert EventPattern.from_dict(document) == pattern

    def test_event_accepts_eventbridge_spelling(self):
        parsed = MeshEvent.from_dict(
            {"source": "s", "detail-type": "d", "account": "a", "detail": {}, "time": "2024-01-01T00:00:00Z"}
        )

        assert parsed.detail_type == "d"
        assert parsed.time.year == 2024


class TestEventBus:
    """Tests for allow-listed delivery and routing."""

    def test_owner_events_are_delivered(self, bus):
        received = []
        channel = bus.create_channel("inbox", owner="a")
        channel.put_rule("all", EventPattern(), received.append)

        assert bus.put_event("inbox", event("a"))
        assert received == []
        assert bus.drain() == 1
        assert len(received) == 1

    def test_unknown_sender_is_dropped_silently(self, bus):
        received = []
        channel = bus.create_channel("inbox", owner="a")
        channel.put_rule("all", EventPattern(), received.append)

        assert not bus.put_event("inbox", event("stranger"))
        bus.drain()
        assert received == []
        assert len(channel.dropped) == 1

    def test_allow_listed_sender_is_delivered(self, bus):
        received = []
        channel = bus.create_channel("inbox", owner="a")
        channel.put_rule("all", EventPattern(), received.append)
        bus.registry.put_permission("inbox", "AllowB", "b")

        assert bus.put_event("inbox", event("b"))
        bus.drain()
        assert len(received) == 1

    def test_unknown_channel(self, bus):
        assert not bus.put_event("nowhere", event("a"))

    def test_non_matching_rule_not_triggered(self, bus):
        received = []
        channel = bus.create_channel("inbox", owner="a")
        channel.put_rule("pings", EventPattern(detail_type=("ping",)), received.append)

        bus.put_event("inbox", event("a", detail_type="pong"))
        assert bus.drain() == 0

        assert received == []
        assert len(channel.received) == 1

    def test_put_rule_replaces_by_name(self, bus):
        first, second = [], []
        channel = bus.create_channel("inbox", owner="a")
        channel.put_rule("rule", EventPattern(), first.append)
        channel.put_rule("rule", EventPattern(), second.append)

        bus.put_event("inbox", event("a"))
        bus.drain()

        assert first == []
        assert len(second) == 1

    def test_routes_forward_keeping_origin(self, bus):
        received = []
        bus.create_channel("hub", owner="a")
        spoke = bus.create_channel("spoke", owner="b")
        spoke.put_rule("all", EventPattern(), received.append)
        bus.registry.put_route("hub", "to-spoke", {"detail-type": ["ping"]}, "spoke")
        bus.registry.put_permission("spoke", "AllowA", "a")

        bus.put_event("hub", event("a"))
        bus.drain()

        assert len(received) == 1
        assert received[0].account == "a"

    def test_deliveries_queued_while_draining_run_in_order(self, bus):
        order = []
        channel = bus.create_channel("inbox", owner="a")

        def first(evt):
            order.append("first:start")
            bus.put_event("inbox", event("a", detail_type="pong"))
            order.append("first:end")

        channel.put_rule("pings", EventPattern(detail_type=("ping",)), first)
        channel.put_rule("pongs", EventPattern(detail_type=("pong",)), lambda evt: order.append("second"))

        bus.put_event("inbox", event("a"))

        assert bus.pending == 1
        assert bus.drain() == 2
        assert order == ["first:start", "first:end", "second"]
        assert bus.pending == 0

    def test_route_without_permission_is_dropped(self, bus):
        bus.create_channel("hub", owner="a")
        spoke = bus.create_channel("spoke", owner="b")
        bus.registry.put_route("hub", "to-spoke", {}, "spoke")

        bus.put_event("hub", event("a"))

        assert spoke.received == []
        assert len(spoke.dropped) == 1


def _mesh_parts(bus, crawler_workflow=True, domain_sleep=lambda s: None):
    control_config = ControlDomainConfig(domain_id=CONTROL_ID, admin_principal=ADMIN)
    config = WorkflowConfig(control_domain_id=CONTROL_ID, admin_principal=ADMIN)
    control = ControlPlane(control_config, config, bus, Executor(sleep=lambda s: None))
    domain = ParticipantDomain(
        DomainConfig(domain_id=DOMAIN_ID, crawler_workflow=crawler_workflow),
        config,
        bus,
        executor=Executor(sleep=domain_sleep),
    )
    domain.services.catalog.databases["sales"] = {"description": "", "parameters": {}}
    return control, domain


PRODUCT = {
    "producer_domain_id": DOMAIN_ID,
    "storage_location": "producer-bucket/sales/",
    "database_name": "sales",
    "tables": ["orders", "customers"],
}


class TestControlPlaneToDomain:
    """End-to-end tests across the control plane and a participant."""

    def test_full_flow(self, bus):
        control, domain = _mesh_parts(bus)
        control.register_domain(domain)

        execution = control.submit(PRODUCT)

        assert execution.status == SUCCEEDED
        assert execution.workflow == GOVERNANCE_WORKFLOW

        [intake] = domain.executions(INTAKE_WORKFLOW)
        assert intake.status == SUCCEEDED
        assert set(domain.services.catalog.links) == {("sales", "rl-orders"), ("sales", "rl-customers")}

        [invitation] = domain.shares.invitations.values()
        assert invitation.sender_domain_id == CONTROL_ID
        assert invitation.status == InvitationStatus.ACCEPTED.value

        [refresh] = domain.executions(REFRESH_WORKFLOW)
        assert refresh.status == SUCCEEDED
        assert len(domain.services.crawlers.deleted) == 2

    def test_intake_emits_completion_signal(self, bus):
        control, domain = _mesh_parts(bus, crawler_workflow=False)
        control.register_domain(domain)

        control.submit(PRODUCT)

        signals = [e for e in domain.channel.received if e.detail_type == EXECUTION_STATUS_CHANGE]
        assert len(signals) == 1
        detail = signals[0].detail
        assert detail["status"] == SUCCEEDED
        assert detail["workflow"] == INTAKE_WORKFLOW
        assert json.loads(detail["input"])["detail"]["table_names"] == ["orders", "customers"]
        assert domain.refresh is None
        assert domain.executions(REFRESH_WORKFLOW) == []

    def test_triggered_workflows_start_after_their_sender_finishes(self, bus):
        control, domain = _mesh_parts(bus)
        control.register_domain(domain)

        governance = control.submit(PRODUCT)

        [intake] = domain.executions(INTAKE_WORKFLOW)
        [refresh] = domain.executions(REFRESH_WORKFLOW)
        assert governance.finished_at < intake.started_at
        assert intake.finished_at < refresh.started_at
        assert bus.pending == 0

    def test_governance_is_recorded_before_crawls_are_polled(self, bus):
        recorded_during_waits = []
        holder = {}

        def domain_sleep(seconds):
            recorded_during_waits.append(len(holder["control"].executions))

        control, domain = _mesh_parts(bus, domain_sleep=domain_sleep)
        holder["control"] = control
        control.register_domain(domain)

        control.submit(PRODUCT)

        assert recorded_during_waits
        assert set(recorded_during_waits) == {1}

    def test_downstream_failure_leaves_governance_untouched(self, bus):
        control, domain = _mesh_parts(bus)
        control.register_domain(domain)
        domain.services.crawlers.fail_next("create_crawl_job", ACCESS_DENIED, "denied")

        execution = control.submit(PRODUCT)

        assert execution.succeeded
        [refresh] = domain.executions(REFRESH_WORKFLOW)
        assert refresh.status == FAILED
        assert refresh.error == ACCESS_DENIED

    def test_malformed_share_event_fails_intake_only(self, bus):
        control, domain = _mesh_parts(bus)
        control.register_domain(domain)
        domain.shares.invite(
            ShareInvitation(invitation_id="inv-1", sender_domain_id=CONTROL_ID, status="PENDING")
        )

        bus.put_event(
            domain.config.channel_name,
            MeshEvent(
                source="com.central.stepfunction",
                detail_type=f"{DOMAIN_ID}_createResourceLinks",
                detail={"table_names": ["orders"]},
                account=CONTROL_ID,
            ),
        )
        bus.drain()

        [intake] = domain.executions(INTAKE_WORKFLOW)
        assert intake.status == FAILED
        assert intake.failed_state == "ForEachTableCreateLink"
        assert domain.executions(REFRESH_WORKFLOW) == []

    def test_unregistered_domain_receives_nothing(self, bus):
        control, domain = _mesh_parts(bus)

        execution = control.submit(PRODUCT)

        # Governance still succeeds: the event is simply never delivered
        assert execution.succeeded
        assert domain.executions() == []
        assert domain.channel.received == []

    def test_event_from_other_sender_ignored(self, bus):
        _, domain = _mesh_parts(bus)
        bus.registry.put_permission(domain.config.channel_name, "AllowOther", "333333333333")

        bus.put_event(
            domain.config.channel_name,
            MeshEvent(
                source="com.central.stepfunction",
                detail_type=f"{DOMAIN_ID}_createResourceLinks",
                detail={"database_name": "sales", "table_names": ["orders"]},
                account="333333333333",
            ),
        )
        bus.drain()

        assert domain.executions(INTAKE_WORKFLOW) == []

    def test_second_product_for_same_database_reuses_share(self, bus):
        control, domain = _mesh_parts(bus, crawler_workflow=False)
        control.register_domain(domain)

        control.submit(PRODUCT)
        second = control.submit({**PRODUCT, "tables": ["returns"]})

        assert second.succeeded
        # No new invitation, so the intake finishes without linking
        assert len(domain.shares.invitations) == 1
        assert domain.executions(INTAKE_WORKFLOW)[-1].visits("ForEachTableCreateLink") == 0


class TestLocalMesh:
    """Tests for building a mesh from mesh.yaml."""

    def test_from_yaml(self, sample_mesh_yaml):
        mesh = LocalMesh.from_config(MeshConfig.from_yaml(sample_mesh_yaml), sleep=lambda s: None)

        handshakes = mesh.register_all()
        executions = mesh.publish_all()

        assert len(handshakes) == 1
        assert [e.status for e in executions] == [SUCCEEDED]
        domain = mesh.domains[DOMAIN_ID]
        assert [e.workflow for e in domain.executions()] == [INTAKE_WORKFLOW, REFRESH_WORKFLOW]
        assert all(e.succeeded for e in domain.executions())
