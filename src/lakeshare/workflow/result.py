"""🎯 Call Results - Typed outcome of a collaborator call.

Every `Call` step produces exactly one of:
- `Ok`: the call succeeded, carrying its payload
- `Conflict`: the resource already exists (recoverable)
- `Fatal`: any other failure

The executor matches on the result type; collaborator exceptions never
cross into control flow.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Union

from lakeshare.errors import TASK_FAILED, ServiceError


@dataclass(frozen=True)
class Ok:
    value: Any = None


@dataclass(frozen=True)
class Conflict:
    kind: str
    message: str

    recoverable = True


@dataclass(frozen=True)
class Fatal:
    kind: str
    message: str

    recoverable = False


CallResult = Union[Ok, Conflict, Fatal]


def from_error(error: ServiceError) -> CallResult:
    """Classify a collaborator error."""
    if error.already_exists:
        return Conflict(error.kind, error.message)
    return Fatal(error.kind, error.message)


def invoke(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> CallResult:
    """Call a collaborator and capture its outcome as a CallResult.

    Example:
        result = invoke(catalog.create_database, "222222222222_sales")
        if isinstance(result, Conflict):
            ...
    """
    try:
        value = fn(*args, **kwargs)
    except ServiceError as e:
        return from_error(e)
    except Exception as e:  # noqa: BLE001 - a crashing step fails its execution
        return Fatal(TASK_FAILED, f"{type(e).__name__}: {e}")

    # Actions may already return a classified result
    if isinstance(value, (Ok, Conflict, Fatal)):
        return value
    return Ok(value)
