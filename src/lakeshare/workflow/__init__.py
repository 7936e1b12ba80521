"""🔁 Workflow Engine - State machines as data, run by a small interpreter.

Example:
    from lakeshare.workflow import Call, Executor, StateMachine, Terminal

    machine = StateMachine(
        "CreateDatabase",
        start_at="Create",
        states=[
            Call("Create", create_db, next="Done", catch={"AlreadyExists": "Done"}),
            Terminal("Done"),
        ],
    )
    execution = Executor().start(machine, {"database_name": "sales"})
    execution.status  # "SUCCEEDED"
"""

from .machine import (
    FAILED,
    RUNNING,
    SUCCEEDED,
    Execution,
    Executor,
    StateMachine,
    StepRecord,
)
from .result import CallResult, Conflict, Fatal, Ok, invoke
from .states import Call, Choice, FanOut, Pass, State, Terminal, Wait

__all__ = [
    # States
    "Call",
    "Choice",
    "FanOut",
    "Pass",
    "State",
    "Terminal",
    "Wait",
    # Results
    "CallResult",
    "Conflict",
    "Fatal",
    "Ok",
    "invoke",
    # Execution
    "Execution",
    "Executor",
    "StateMachine",
    "StepRecord",
    "RUNNING",
    "SUCCEEDED",
    "FAILED",
]
