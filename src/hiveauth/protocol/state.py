"""State machines for the relay connection and for in-flight requests."""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Generic, TypeVar


class ConnectionState(Enum):
    """
    Relay connection states.

    State transitions:
        DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED
                                 \\
                                  -> DISCONNECTED

    A dropped connection returns to DISCONNECTED; the next operation
    starts a new connection attempt.
    """

    DISCONNECTED = auto()
    CONNECTING = auto()
    CONNECTED = auto()

    def __str__(self) -> str:
        return self.name


class FlowPhase(Enum):
    """
    Phases of a correlated request.

    State transitions:
        SENT -> CONFIRMED -> TERMINAL
            \\               /
             -> TERMINAL <-

    A request never moves backward.
    """

    SENT = auto()
    CONFIRMED = auto()
    TERMINAL = auto()

    def __str__(self) -> str:
        return self.name


class InvalidStateTransition(Exception):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_state: Enum, to_state: Enum):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid state transition: {from_state.name} -> {to_state.name}"
        )


S = TypeVar("S", bound=Enum)

# Type for state transition callbacks
StateTransitionCallback = Callable[[S, S], None]


class StateMachine(Generic[S]):
    """
    Enforces valid state transitions and notifies listeners
    when transitions occur.
    """

    VALID_TRANSITIONS: dict = {}

    def __init__(self, initial_state: S):
        self._state = initial_state
        self._listeners: list[StateTransitionCallback] = []

    @property
    def state(self) -> S:
        """Current state."""
        return self._state

    def can_transition_to(self, new_state: S) -> bool:
        """Check if transition to new_state is valid."""
        return new_state in self.VALID_TRANSITIONS.get(self._state, [])

    def transition(self, new_state: S) -> None:
        """
        Transition to a new state.

        Args:
            new_state: The target state.

        Raises:
            InvalidStateTransition: If the transition is not valid.
        """
        if not self.can_transition_to(new_state):
            raise InvalidStateTransition(self._state, new_state)

        old_state = self._state
        self._state = new_state

        for listener in self._listeners:
            try:
                listener(old_state, new_state)
            except Exception:
                # Don't let listener errors affect state machine
                pass

    def on_transition(self, callback: StateTransitionCallback) -> None:
        """
        Register a callback for state transitions.

        Args:
            callback: Function called with (old_state, new_state) on transitions.
        """
        self._listeners.append(callback)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(state={self._state!r})"


class ConnectionStateMachine(StateMachine[ConnectionState]):
    """Tracks the relay connection lifecycle."""

    VALID_TRANSITIONS = {
        ConnectionState.DISCONNECTED: [ConnectionState.CONNECTING],
        ConnectionState.CONNECTING: [
            ConnectionState.CONNECTED,
            ConnectionState.DISCONNECTED,  # Connection failed
        ],
        ConnectionState.CONNECTED: [ConnectionState.DISCONNECTED],
    }

    def __init__(self):
        super().__init__(ConnectionState.DISCONNECTED)

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED


class FlowStateMachine(StateMachine[FlowPhase]):
    """Tracks one request from send to its terminal outcome."""

    VALID_TRANSITIONS = {
        FlowPhase.SENT: [FlowPhase.CONFIRMED, FlowPhase.TERMINAL],
        FlowPhase.CONFIRMED: [FlowPhase.TERMINAL],
        FlowPhase.TERMINAL: [],  # Terminal state
    }

    def __init__(self):
        super().__init__(FlowPhase.SENT)

    @property
    def is_terminal(self) -> bool:
        return self._state == FlowPhase.TERMINAL


@dataclass
class ConnectionInfo:
    """What the relay announced in its ``connected`` handshake."""

    server_timeout_ms: float | None = None
    server_protocol: float | None = None

    def timeout_ms(self, default_ms: float) -> float:
        """Request timeout to apply, falling back to default_ms."""
        if self.server_timeout_ms is None:
            return default_ms
        return self.server_timeout_ms

    def reset(self) -> None:
        self.server_timeout_ms = None
        self.server_protocol = None
