from typing import Dict

from ..models.models import CodeState

# Judge0 status ids
CODE_STATES: Dict[int, CodeState] = {
    1: CodeState.IN_QUEUE,
    2: CodeState.PROCESSING,
    3: CodeState.ACCEPTED,
    4: CodeState.WRONG,
    5: CodeState.TIME_LIMIT_EXCEEDED,
    6: CodeState.COMPILE_ERROR,
    7: CodeState.RUNTIME_ERROR_SIGSEGV,
    8: CodeState.RUNTIME_ERROR_SIGXFSZ,
    9: CodeState.RUNTIME_ERROR_SIGFPE,
    10: CodeState.RUNTIME_ERROR_SIGABRT,
    11: CodeState.RUNTIME_ERROR_NZEC,
    12: CodeState.RUNTIME_ERROR_OTHER,
    13: CodeState.INTERNAL_ERROR,
    14: CodeState.EXEC_FORMAT_ERROR,
}

PENDING_STATES = frozenset({CodeState.IN_QUEUE, CodeState.PROCESSING})
SCORING_STATES = frozenset({CodeState.ACCEPTED, CodeState.WRONG})


def map_status(status_id: int) -> CodeState:
    """Map an execution service status id, unknown ids end as INTERNAL_ERROR"""
    return CODE_STATES.get(status_id, CodeState.INTERNAL_ERROR)


def is_terminal(state: CodeState) -> bool:
    return state not in PENDING_STATES


def is_scoring(state: CodeState) -> bool:
    return state in SCORING_STATES


def can_transition(current: CodeState, new: CodeState) -> bool:
    """
    Whether a submission in `current` may move to `new`.

    States only move forward: IN_QUEUE -> PROCESSING -> terminal, with
    PROCESSING optional. Nothing leaves a terminal state.
    """
    if is_terminal(current):
        return False
    if current == CodeState.PROCESSING:
        return is_terminal(new)
    return new != CodeState.IN_QUEUE
