"""🧩 State Kinds - The building blocks of a workflow definition.

A workflow is data: a set of named states, each naming its successor.

    Call      invoke a collaborator, store or discard its result,
              optionally route named error kinds to other states
    Choice    pick the first successor whose predicate holds
    FanOut    run a sub-machine once per item, concurrently
    Wait      sleep for a fixed duration
    Pass      reshape the execution data
    Terminal  end the (sub-)execution, successfully or not

The data threaded through an execution is a plain dict.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Literal, Union

if TYPE_CHECKING:
    from .machine import Execution, StateMachine

Data = dict[str, Any]
Action = Callable[[Data, "Execution"], Any]
Predicate = Callable[[Data], bool]


@dataclass
class Call:
    """Invoke an action; the action receives the data and the running execution."""

    name: str
    action: Action
    next: str
    result_path: str | None = None
    result_selector: Callable[[Any], Any] | None = None
    catch: dict[str, str] = field(default_factory=dict)
    error_path: str | None = "exception"

    kind = "Call"

    def successors(self) -> list[str]:
        return [self.next, *self.catch.values()]


@dataclass
class Choice:
    """Route to the first matching choice, else to `default`."""

    name: str
    choices: list[tuple[Predicate, str]]
    default: str

    kind = "Choice"

    def successors(self) -> list[str]:
        return [target for _, target in self.choices] + [self.default]

    def select(self, data: Data) -> str:
        for predicate, target in self.choices:
            if predicate(data):
                return target
        return self.default


@dataclass
class FanOut:
    """Run `branch` for every item; any branch failure fails the fan-out.

    Branch outputs are collected in item order, whatever order the
    branches finish in.
    """

    name: str
    items: Callable[[Data], list[Any]]
    branch: StateMachine
    next: str
    item_input: Callable[[Data, Any], Data] | None = None
    max_concurrency: int | None = None
    result_path: str | None = None
    result_selector: Callable[[list[Any]], Any] | None = None

    kind = "FanOut"

    def successors(self) -> list[str]:
        return [self.next]

    def inputs(self, data: Data) -> list[Data]:
        items = self.items(data)
        if self.item_input is None:
            return [{"item": item} for item in items]
        return [self.item_input(data, item) for item in items]


@dataclass
class Wait:
    name: str
    seconds: float
    next: str

    kind = "Wait"

    def successors(self) -> list[str]:
        return [self.next]


@dataclass
class Pass:
    """Replace the data with `transform(data)` (identity when not set)."""

    name: str
    next: str
    transform: Callable[[Data], Any] | None = None

    kind = "Pass"

    def successors(self) -> list[str]:
        return [self.next]

    def apply(self, data: Data) -> Any:
        return data if self.transform is None else self.transform(data)


@dataclass
class Terminal:
    """End of a (sub-)execution.

    `output` selects what the execution returns; a failing terminal
    reports `error` and `cause`.
    """

    name: str
    status: Literal["SUCCEEDED", "FAILED"] = "SUCCEEDED"
    output: Callable[[Any], Any] | None = None
    error: str | None = None
    cause: str | None = None

    kind = "Terminal"

    def successors(self) -> list[str]:
        return []


State = Union[Call, Choice, FanOut, Wait, Pass, Terminal]
