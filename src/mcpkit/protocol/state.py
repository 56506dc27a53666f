"""Session lifecycle state machine for the initialize handshake."""

import logging
from enum import Enum, auto
from typing import Callable

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """
    Session lifecycle states.

    State transitions:
        UNINITIALIZED -> INITIALIZING -> INITIALIZED
              \\               |              /
               -----------> CLOSED <---------

    A server enters INITIALIZING when it answers `initialize` and
    INITIALIZED on `notifications/initialized`. A client enters INITIALIZING
    when it sends `initialize` and INITIALIZED once it has sent
    `notifications/initialized`.
    """

    UNINITIALIZED = auto()
    INITIALIZING = auto()
    INITIALIZED = auto()
    CLOSED = auto()

    def __str__(self) -> str:
        return self.name


class InvalidStateTransition(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_state: SessionState, to_state: SessionState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid state transition: {from_state.name} -> {to_state.name}"
        )


StateTransitionCallback = Callable[[SessionState, SessionState], None]


class SessionStateMachine:
    """
    Tracks the handshake state of one session.

    Enforces valid state transitions and notifies listeners
    when transitions occur.
    """

    VALID_TRANSITIONS: dict[SessionState, list[SessionState]] = {
        SessionState.UNINITIALIZED: [
            SessionState.INITIALIZING,
            SessionState.CLOSED,
        ],
        SessionState.INITIALIZING: [
            SessionState.INITIALIZED,
            SessionState.CLOSED,
        ],
        SessionState.INITIALIZED: [SessionState.CLOSED],
        SessionState.CLOSED: [],
    }

    def __init__(self, initial_state: SessionState = SessionState.UNINITIALIZED):
        self._state = initial_state
        self._listeners: list[StateTransitionCallback] = []

    @property
    def state(self) -> SessionState:
        """Current session state."""
        return self._state

    @property
    def is_initialized(self) -> bool:
        """Check if the handshake has completed."""
        return self._state == SessionState.INITIALIZED

    @property
    def has_started_handshake(self) -> bool:
        """Check if `initialize` has been exchanged."""
        return self._state in (SessionState.INITIALIZING, SessionState.INITIALIZED)

    def can_transition_to(self, new_state: SessionState) -> bool:
        """Check if transition to new_state is valid."""
        return new_state in self.VALID_TRANSITIONS.get(self._state, [])

    def transition(self, new_state: SessionState) -> None:
        """
        Transition to a new state.

        Args:
            new_state: The target state.

        Raises:
            InvalidStateTransition: If the transition is not valid.
        """
        if not self.can_transition_to(new_state):
            raise InvalidStateTransition(self._state, new_state)
        self._set(new_state)

    def force_state(self, new_state: SessionState) -> None:
        """
        Force a state without validation.

        Only for teardown and error recovery.
        """
        self._set(new_state)

    def _set(self, new_state: SessionState) -> None:
        old_state = self._state
        self._state = new_state

        for listener in self._listeners:
            try:
                listener(old_state, new_state)
            except Exception:
                logger.exception("State listener failed")

    def on_transition(self, callback: StateTransitionCallback) -> None:
        """
        Register a callback for state transitions.

        Args:
            callback: Function called with (old_state, new_state) on transitions.
        """
        self._listeners.append(callback)

    def __str__(self) -> str:
        return f"SessionStateMachine({self._state.name})"

    def __repr__(self) -> str:
        return f"SessionStateMachine(state={self._state!r})"
