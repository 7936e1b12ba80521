"""✉️ Mesh Events - Event envelopes and the patterns rules match them with."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from lakeshare.workflow import Execution

WORKFLOW_EVENT_SOURCE = "lakeshare.workflows"
EXECUTION_STATUS_CHANGE = "Workflow Execution Status Change"


@dataclass
class MeshEvent:
    """An event travelling between domain channels.

    `account` is the domain that originally sent the event; forwarding
    between channels keeps it.
    """

    source: str
    detail_type: str
    detail: dict[str, Any]
    account: str
    region: str = "us-east-1"
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.event_id,
            "source": self.source,
            "detail_type": self.detail_type,
            "account": self.account,
            "region": self.region,
            "time": self.time.isoformat(),
            "detail": self.detail,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MeshEvent:
        """Accept both our own format and EventBridge's `detail-type` spelling."""
        time = data.get("time")
        return cls(
            source=data["source"],
            detail_type=data.get("detail_type") or data.get("detail-type", ""),
            detail=data.get("detail") or {},
            account=data.get("account", ""),
            region=data.get("region", "us-east-1"),
            event_id=data.get("id") or str(uuid.uuid4()),
            time=datetime.fromisoformat(time.replace("Z", "+00:00"))
            if isinstance(time, str)
            else datetime.now(timezone.utc),
        )


def execution_status_event(execution: Execution, account: str, region: str) -> MeshEvent:
    """Signal emitted on a domain's channel when a workflow execution ends."""
    return MeshEvent(
        source=WORKFLOW_EVENT_SOURCE,
        detail_type=EXECUTION_STATUS_CHANGE,
        detail={
            "status": execution.status,
            "workflow": execution.workflow,
            "execution_id": execution.execution_id,
            "input": json.dumps(execution.input, default=str),
        },
        account=account,
        region=region,
    )


@dataclass(frozen=True)
class EventPattern:
    """Matches events by source, detail type, sending account, and detail fields.

    Empty criteria match anything; each criterion lists accepted values.

    Example:
        pattern = EventPattern(
            source=("com.central.stepfunction",),
            detail_type=("222_createResourceLinks",),
        )
    """

    source: tuple[str, ...] = ()
    detail_type: tuple[str, ...] = ()
    account: tuple[str, ...] = ()
    detail: tuple[tuple[str, tuple[Any, ...]], ...] = ()

    def matches(self, event: MeshEvent) -> bool:
        if self.source and event.source not in self.source:
            return False
        if self.detail_type and event.detail_type not in self.detail_type:
            return False
        if self.account and event.account not in self.account:
            return False
        for key, accepted in self.detail:
            if event.detail.get(key) not in accepted:
                return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """EventBridge event pattern document."""
        pattern: dict[str, Any] = {}
        if self.source:
            pattern["source"] = list(self.source)
        if self.detail_type:
            pattern["detail-type"] = list(self.detail_type)
        if self.account:
            pattern["account"] = list(self.account)
        if self.detail:
            pattern["detail"] = {key: list(values) for key, values in self.detail}
        return pattern

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EventPattern:
        return cls(
            source=tuple(data.get("source", ())),
            detail_type=tuple(data.get("detail-type", ())),
            account=tuple(data.get("account", ())),
            detail=tuple(
                (key, tuple(values)) for key, values in data.get("detail", {}).items()
            ),
        )
