"""Per-principal session lifecycle transition rules."""

from enum import Enum

from dealflow.errors import ApiError


class SessionState(str, Enum):
    ANONYMOUS = "ANONYMOUS"
    REGISTERING = "REGISTERING"
    ACTIVE = "ACTIVE"
    REFRESH_PENDING = "REFRESH_PENDING"
    LOGGED_OUT = "LOGGED_OUT"


# REFRESH_PENDING is transient and never persisted; ANONYMOUS precedes the record.
PERSISTED_STATES: frozenset[SessionState] = frozenset(
    {SessionState.REGISTERING, SessionState.ACTIVE, SessionState.LOGGED_OUT}
)

_ALLOWED_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.ANONYMOUS: {SessionState.REGISTERING},
    SessionState.REGISTERING: {SessionState.ACTIVE, SessionState.LOGGED_OUT},
    SessionState.ACTIVE: {SessionState.ACTIVE, SessionState.REFRESH_PENDING, SessionState.LOGGED_OUT},
    SessionState.REFRESH_PENDING: {SessionState.ACTIVE, SessionState.LOGGED_OUT},
    SessionState.LOGGED_OUT: {SessionState.ACTIVE, SessionState.LOGGED_OUT},
}


def allowed_next_states(state: SessionState) -> list[SessionState]:
    """Return deterministically ordered allowed successors for a state."""
    return sorted(_ALLOWED_TRANSITIONS.get(state, set()), key=lambda s: s.value)


def can_transition(old_state: SessionState, new_state: SessionState) -> bool:
    return new_state in _ALLOWED_TRANSITIONS.get(old_state, set())


def ensure_session_transition(old_state: SessionState, new_state: SessionState) -> None:
    """Validate a session transition according to lifecycle rules."""
    if not can_transition(old_state, new_state):
        raise ApiError(
            status_code=409,
            code="SESSION_TRANSITION_INVALID",
            message="Invalid session transition",
            details={
                "current_state": old_state,
                "attempted_state": new_state,
                "allowed_next_states": allowed_next_states(old_state),
            },
        )
