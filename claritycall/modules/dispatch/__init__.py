"""Guarded state transitions and exactly-once dispatch."""

from claritycall.modules.dispatch.state_machine import ClaimOutcome, DispatchResult, DispatchStateMachine
from claritycall.modules.dispatch.transitions import (
    CancelTask,
    ClaimScheduledCall,
    ClaimTaskReminder,
    CompleteCall,
    CompleteScheduledCall,
    CompleteTask,
    CompleteTaskReminder,
    FailCall,
    FailScheduledCall,
    FailTaskReminder,
    MarkCallNoAnswer,
    StartCall,
    Transition,
)

__all__ = [
    "CancelTask",
    "ClaimOutcome",
    "ClaimScheduledCall",
    "ClaimTaskReminder",
    "CompleteCall",
    "CompleteScheduledCall",
    "CompleteTask",
    "CompleteTaskReminder",
    "DispatchResult",
    "DispatchStateMachine",
    "FailCall",
    "FailScheduledCall",
    "FailTaskReminder",
    "MarkCallNoAnswer",
    "StartCall",
    "Transition",
]
