"""⚡ Workflow Executor - Interpret state machines and record executions.

Handles:
- Validating definitions (start state, successors, duplicate names)
- Threading the execution data from state to state
- Matching call results against declared error routes
- Running fan-out branches on a bounded thread pool
- Recording every transition in the execution history
"""

from __future__ import annotations

import threading
import time
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from copy import deepcopy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

import structlog

from lakeshare.errors import DefinitionError, ExecutionFailed

from .result import Conflict, Fatal, Ok, invoke
from .states import Call, Choice, Data, FanOut, Pass, State, Terminal, Wait

logger = structlog.get_logger(__name__)

RUNNING = "RUNNING"
SUCCEEDED = "SUCCEEDED"
FAILED = "FAILED"


class StateMachine:
    """A named, validated set of states.

    Example:
        machine = StateMachine(
            "Hello",
            start_at="Greet",
            states=[
                Call("Greet", lambda data, execution: "hi", next="Done", result_path="greeting"),
                Terminal("Done"),
            ],
        )
    """

    def __init__(self, name: str, start_at: str, states: Iterable[State]):
        self.name = name
        self.start_at = start_at
        self.states: dict[str, State] = {}

        for state in states:
            if state.name in self.states:
                raise DefinitionError(f"{name}: duplicate state '{state.name}'")
            self.states[state.name] = state

        self._validate()

    def _validate(self) -> None:
        if self.start_at not in self.states:
            raise DefinitionError(f"{self.name}: start state '{self.start_at}' not defined")

        for state in self.states.values():
            for target in state.successors():
                if target not in self.states:
                    raise DefinitionError(
                        f"{self.name}: state '{state.name}' points to unknown state '{target}'"
                    )

        if not any(isinstance(s, Terminal) for s in self.states.values()):
            raise DefinitionError(f"{self.name}: no terminal state")

    def __getitem__(self, name: str) -> State:
        return self.states[name]

    def __repr__(self) -> str:
        return f"StateMachine({self.name!r}, states={list(self.states)})"


@dataclass
class StepRecord:
    """One entry in an execution's history."""

    state: str
    kind: str
    outcome: str
    branch: str = ""
    detail: str | None = None
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "state": self.state,
            "kind": self.kind,
            "outcome": self.outcome,
            "branch": self.branch,
            "detail": self.detail,
            "at": self.at.isoformat(),
        }


@dataclass
class Execution:
    """A single run of a workflow."""

    execution_id: str
    workflow: str
    input: Any
    status: str = RUNNING
    output: Any = None
    error: str | None = None
    cause: str | None = None
    failed_state: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    history: list[StepRecord] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED

    @property
    def duration_ms(self) -> int | None:
        if self.finished_at is None:
            return None
        return int((self.finished_at - self.started_at).total_seconds() * 1000)

    def record(self, step: StepRecord) -> None:
        with self._lock:
            self.history.append(step)

    def visits(self, state: str) -> int:
        """How many times a state was entered (across all branches)."""
        return sum(1 for step in self.history if step.state == state and step.outcome == "entered")

    def raise_for_status(self) -> Execution:
        if self.status == FAILED:
            raise ExecutionFailed(
                self.workflow, self.execution_id, self.error or "", self.cause or ""
            )
        return self

    def to_dict(self) -> dict:
        return {
            "execution_id": self.execution_id,
            "workflow": self.workflow,
            "status": self.status,
            "input": self.input,
            "output": self.output,
            "error": self.error,
            "cause": self.cause,
            "failed_state": self.failed_state,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": self.duration_ms,
        }


@dataclass
class _Outcome:
    succeeded: bool
    output: Any = None
    error: str | None = None
    cause: str | None = None
    state: str | None = None


class Executor:
    """Run state machines to completion.

    Args:
        sleep: Called for every `Wait` state (inject a no-op in tests)
        id_factory: Produces execution ids
        listeners: Called with every finished top-level execution

    Example:
        executor = Executor()
        execution = executor.start(machine, {"name": "world"})
        if execution.succeeded:
            print(execution.output)
    """

    def __init__(
        self,
        sleep: Callable[[float], None] = time.sleep,
        id_factory: Callable[[], str] | None = None,
        listeners: Iterable[Callable[[Execution], None]] = (),
    ):
        self.sleep = sleep
        self.id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self.listeners = list(listeners)

    def add_listener(self, listener: Callable[[Execution], None]) -> None:
        self.listeners.append(listener)

    def start(
        self,
        machine: StateMachine,
        input: Any,
        execution_id: str | None = None,
    ) -> Execution:
        """Run `machine` on `input` and return the finished execution."""
        execution = Execution(
            execution_id=execution_id or self.id_factory(),
            workflow=machine.name,
            input=deepcopy(input),
        )
        log = logger.bind(workflow=machine.name, execution_id=execution.execution_id)
        log.info("execution_started")

        outcome = self._interpret(machine, deepcopy(input), execution, branch="")

        execution.finished_at = datetime.now(timezone.utc)
        if outcome.succeeded:
            execution.status = SUCCEEDED
            execution.output = outcome.output
            log.info("execution_succeeded", duration_ms=execution.duration_ms)
        else:
            execution.status = FAILED
            execution.error = outcome.error
            execution.cause = outcome.cause
            execution.failed_state = outcome.state
            log.warning(
                "execution_failed",
                state=outcome.state,
                error=outcome.error,
                cause=outcome.cause,
            )

        for listener in self.listeners:
            listener(execution)

        return execution

    def _interpret(
        self,
        machine: StateMachine,
        data: Any,
        execution: Execution,
        branch: str,
    ) -> _Outcome:
        current = machine.start_at

        while True:
            state = machine[current]
            execution.record(StepRecord(state.name, state.kind, "entered", branch))
            logger.debug(
                "state_entered",
                workflow=machine.name,
                execution_id=execution.execution_id,
                state=state.name,
                branch=branch,
            )

            if isinstance(state, Terminal):
                if state.status == FAILED:
                    return _Outcome(False, error=state.error, cause=state.cause, state=state.name)
                if state.output is None:
                    return _Outcome(True, output=data)
                result = invoke(state.output, data)
                if not isinstance(result, Ok):
                    return self._failed(state, result, execution, branch)
                return _Outcome(True, output=result.value)

            if isinstance(state, Call):
                result = invoke(state.action, data, execution)

                if isinstance(result, Ok):
                    value = result.value
                    if state.result_selector is not None:
                        selected = invoke(state.result_selector, value)
                        if not isinstance(selected, Ok):
                            return self._failed(state, selected, execution, branch)
                        value = selected.value
                    if state.result_path is not None:
                        data[state.result_path] = value
                    execution.record(StepRecord(state.name, state.kind, "ok", branch))
                    current = state.next
                    continue

                # Conflict or Fatal: follow a declared route, else fail
                target = state.catch.get(result.kind)
                if target is None:
                    return self._failed(state, result, execution, branch)

                if state.error_path is not None:
                    data[state.error_path] = {"error": result.kind, "cause": result.message}
                outcome = "recovered" if isinstance(result, Conflict) else "caught"
                execution.record(StepRecord(state.name, state.kind, outcome, branch, result.kind))
                logger.info(
                    "state_recovered",
                    workflow=machine.name,
                    execution_id=execution.execution_id,
                    state=state.name,
                    error=result.kind,
                    next_state=target,
                )
                current = target
                continue

            if isinstance(state, Choice):
                result = invoke(state.select, data)
                if not isinstance(result, Ok):
                    return self._failed(state, result, execution, branch)
                current = result.value
                continue

            if isinstance(state, Pass):
                result = invoke(state.apply, data)
                if not isinstance(result, Ok):
                    return self._failed(state, result, execution, branch)
                data = result.value
                current = state.next
                continue

            if isinstance(state, Wait):
                self.sleep(state.seconds)
                current = state.next
                continue

            if isinstance(state, FanOut):
                outcome = self._fan_out(state, data, execution, branch)
                if not outcome.succeeded:
                    return outcome
                results = outcome.output
                if state.result_selector is not None:
                    selected = invoke(state.result_selector, results)
                    if not isinstance(selected, Ok):
                        return self._failed(state, selected, execution, branch)
                    results = selected.value
                if state.result_path is not None:
                    data[state.result_path] = results
                current = state.next
                continue

            raise DefinitionError(f"Unsupported state type: {type(state).__name__}")

    @staticmethod
    def _failed(
        state: State,
        result: Conflict | Fatal,
        execution: Execution,
        branch: str,
    ) -> _Outcome:
        execution.record(StepRecord(state.name, state.kind, "failed", branch, result.message))
        return _Outcome(False, error=result.kind, cause=result.message, state=state.name)

    def _fan_out(
        self,
        state: FanOut,
        data: Data,
        execution: Execution,
        branch: str,
    ) -> _Outcome:
        prepared = invoke(state.inputs, data)
        if not isinstance(prepared, Ok):
            return self._failed(state, prepared, execution, branch)
        inputs = prepared.value
        if not inputs:
            return _Outcome(True, output=[])

        workers = len(inputs)
        if state.max_concurrency:
            workers = min(workers, state.max_concurrency)

        results: list[Any] = [None] * len(inputs)
        failure: _Outcome | None = None

        with ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix=f"{execution.workflow}-{state.name}",
        ) as pool:
            pending: dict[Future, int] = {}
            for index, item in enumerate(inputs):
                path = f"{branch}{state.name}[{index}]"
                future = pool.submit(self._interpret, state.branch, item, execution, path)
                pending[future] = index

            while pending:
                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    index = pending.pop(future)
                    outcome = future.result()
                    if outcome.succeeded:
                        results[index] = outcome.output
                    elif failure is None:
                        failure = outcome
                if failure is not None:
                    # Branches that have not started are abandoned
                    for future in pending:
                        future.cancel()
                    pending = {f: i for f, i in pending.items() if not f.cancelled()}

        if failure is not None:
            execution.record(StepRecord(state.name, state.kind, "failed", branch, failure.error))
            return failure

        execution.record(StepRecord(state.name, state.kind, "ok", branch))
        return _Outcome(True, output=results)
