"""🤝 Registration Handshake - Let a participant domain join the mesh.

For a (control-plane domain, participant domain) pair it records:
1. On the control channel: permission for the participant to put events
2. On the participant channel: permission for the control plane to put events
3. On the control channel: a routing rule forwarding
   `{domain_id}_createResourceLinks` events to the participant channel

Entries are keyed by statement id / rule name, so registering the same
pair twice updates the entries in place.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

import structlog

from lakeshare.config import ControlDomainConfig, DomainConfig
from lakeshare.products.models import create_resource_links_detail_type

from .events import EventPattern
from .registry import ChannelPermission, DomainRegistration, RoutingRule, TrustRegistry

logger = structlog.get_logger(__name__)

CONTROL_STATEMENT_PREFIX = "AllowDataDomainAccToPutEvents_"
DOMAIN_STATEMENT_ID = "AllowCentralAccountToPutEvents"


@dataclass
class Handshake:
    """Artifacts of one domain registration."""

    control_domain_id: str
    domain: DomainRegistration
    permissions: list[ChannelPermission]
    route: RoutingRule


def routing_rule_name(domain_id: str) -> str:
    return f"{domain_id}_createResourceLinks_rule"


def routing_pattern(event_source: str, domain_id: str) -> EventPattern:
    return EventPattern(
        source=(event_source,),
        detail_type=(create_resource_links_detail_type(domain_id),),
    )


def register_domain(
    registry: TrustRegistry,
    control: ControlDomainConfig,
    domain: DomainConfig,
    event_source: str,
) -> Handshake:
    """Register `domain` with the control plane. Safe to re-run."""
    registration = registry.upsert_domain(domain.domain_id, domain.region, domain.channel_name)

    inbound = registry.put_permission(
        channel=control.channel_name,
        statement_id=f"{CONTROL_STATEMENT_PREFIX}{domain.domain_id}",
        principal=domain.domain_id,
    )
    outbound = registry.put_permission(
        channel=domain.channel_name,
        statement_id=DOMAIN_STATEMENT_ID,
        principal=control.domain_id,
    )
    route = registry.put_route(
        channel=control.channel_name,
        name=routing_rule_name(domain.domain_id),
        pattern=routing_pattern(event_source, domain.domain_id).to_dict(),
        target_channel=domain.channel_name,
        target_arn=domain.channel_arn,
    )

    logger.info(
        "domain_registered",
        control_domain_id=control.domain_id,
        domain_id=domain.domain_id,
        channel=domain.channel_name,
    )
    return Handshake(
        control_domain_id=control.domain_id,
        domain=registration,
        permissions=[inbound, outbound],
        route=route,
    )


def deregister_domain(
    registry: TrustRegistry,
    control: ControlDomainConfig,
    domain_id: str,
) -> bool:
    """Remove a domain's registration artifacts. Returns False if none existed."""
    existing = registry.get_domain(domain_id)
    if existing is None:
        return False

    registry.revoke_permission(control.channel_name, f"{CONTROL_STATEMENT_PREFIX}{domain_id}")
    registry.revoke_permission(existing.channel, DOMAIN_STATEMENT_ID)
    registry.remove_route(control.channel_name, routing_rule_name(domain_id))
    registry.remove_domain(domain_id)
    logger.info("domain_deregistered", domain_id=domain_id)
    return True


class EventBridgeHandshake:
    """Applies a handshake to EventBridge buses.

    put_permission, put_rule, and put_targets are all keyed by name, so
    applying the same handshake again is a no-op.
    """

    def __init__(self, control_client, domain_client=None, target_role_arn: str | None = None):
        self.control_client = control_client
        self.domain_client = domain_client
        self.target_role_arn = target_role_arn

    def apply(self, handshake: Handshake) -> None:
        from lakeshare.services.aws import call_aws

        for permission in handshake.permissions:
            client = self._client_for(permission.channel, handshake)
            if client is None:
                logger.warning(
                    "permission_skipped",
                    channel=permission.channel,
                    reason="no client for the participant account",
                )
                continue
            call_aws(
                "put_permission",
                client.put_permission,
                EventBusName=permission.channel,
                Action=permission.action,
                Principal=permission.principal,
                StatementId=permission.statement_id,
            )

        route = handshake.route
        call_aws(
            "put_rule",
            self.control_client.put_rule,
            Name=route.name,
            EventBusName=route.channel,
            EventPattern=json.dumps(route.pattern),
            State="ENABLED",
        )

        target = {"Id": route.target_channel, "Arn": route.target_arn}
        if self.target_role_arn:
            target["RoleArn"] = self.target_role_arn
        call_aws(
            "put_targets",
            self.control_client.put_targets,
            Rule=route.name,
            EventBusName=route.channel,
            Targets=[target],
        )

    def _client_for(self, channel: str, handshake: Handshake):
        if channel == handshake.domain.channel:
            return self.domain_client
        return self.control_client
