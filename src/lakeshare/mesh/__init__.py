"""🕸️ Mesh - Domain registration, event channels, and the local runtime."""

from .bus import ChannelPublisher, Delivery, EventChannel, MeshEventBus
from .domains import ControlPlane, CrossDomainSharing, LocalMesh, ParticipantDomain
from .events import (
    EXECUTION_STATUS_CHANGE,
    WORKFLOW_EVENT_SOURCE,
    EventPattern,
    MeshEvent,
    execution_status_event,
)
from .registration import EventBridgeHandshake, Handshake, deregister_domain, register_domain
from .registry import ChannelPermission, DomainRegistration, RoutingRule, TrustRegistry

__all__ = [
    "ChannelPublisher",
    "Delivery",
    "EventChannel",
    "MeshEventBus",
    "ControlPlane",
    "CrossDomainSharing",
    "LocalMesh",
    "ParticipantDomain",
    "EXECUTION_STATUS_CHANGE",
    "WORKFLOW_EVENT_SOURCE",
    "EventPattern",
    "MeshEvent",
    "execution_status_event",
    "EventBridgeHandshake",
    "Handshake",
    "deregister_domain",
    "register_domain",
    "ChannelPermission",
    "DomainRegistration",
    "RoutingRule",
    "TrustRegistry",
]
