"""
Stream lifecycle state machine.

Uses python-statemachine to guard the producer's transitions:
idle -> active -> completed | failed. Terminal states are final, so a
stream reports exactly one outcome.
"""
from statemachine import State, StateMachine

from .types import StreamStatus

_STATUS_BY_STATE = {
    "idle": StreamStatus.NONE,
    "active": StreamStatus.ACTIVE,
    "completed": StreamStatus.COMPLETED,
    "failed": StreamStatus.ERROR,
}


class StreamLifecycle(StateMachine):
    idle = State(initial=True)
    active = State()
    completed = State(final=True)
    failed = State(final=True)

    begin = idle.to(active)
    succeed = active.to(completed)
    fail = idle.to(failed) | active.to(failed)

    def __init__(self, stream_id: str):
        self.stream_id = stream_id
        super().__init__()

    @property
    def status(self) -> StreamStatus:
        return _STATUS_BY_STATE[self.current_state.id]

    @property
    def is_finished(self) -> bool:
        return self.current_state.final
