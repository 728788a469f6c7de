"""
Cross-chain route state machine.

ROUTE STATE CONTRACT:
=====================

States (RouteState):
  TRYING     → executing on the active network
  SCANNING   → preferred network refused for funds; scanning alternates
  REROUTING  → alternate chosen; re-verifying allowance before retry
  SUCCEEDED  → transfer confirmed
  FAILED     → terminal failure

Transitions:
  TRYING     → SUCCEEDED  (execution succeeded)
  TRYING     → FAILED     (non-funds failure, or funds failure after reroute)
  TRYING     → SCANNING   (funds failure on the preferred network)
  SCANNING   → REROUTING  (alternate with balance AND allowance found)
  SCANNING   → FAILED     (no viable alternate)
  REROUTING  → TRYING     (allowance confirmed on the chosen network)
  REROUTING  → FAILED     (allowance no longer sufficient)

Exactly one network is active at any time; rerouting replaces it.
=====================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from core.exceptions import InvalidTransitionError


class RouteState(str, Enum):
    """Route states for one logical transfer."""
    TRYING = "TRYING"
    SCANNING = "SCANNING"
    REROUTING = "REROUTING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


# Valid state transitions
VALID_TRANSITIONS: Dict[RouteState, List[RouteState]] = {
    RouteState.TRYING: [RouteState.SUCCEEDED, RouteState.FAILED, RouteState.SCANNING],
    RouteState.SCANNING: [RouteState.REROUTING, RouteState.FAILED],
    RouteState.REROUTING: [RouteState.TRYING, RouteState.FAILED],
    RouteState.SUCCEEDED: [],  # Terminal state
    RouteState.FAILED: [],  # Terminal state
}


@dataclass
class StateTransition:
    """Record of a state transition."""
    from_state: RouteState
    to_state: RouteState
    network: str
    timestamp: str = ""
    reason: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()


@dataclass
class RouteStateMachine:
    """
    State machine for one routeAndExecute call.

    Tracks the active network, the current state and transition history.
    """
    token: str
    network: str
    state: RouteState = RouteState.TRYING
    preferred_network: str = ""
    history: List[StateTransition] = field(default_factory=list)

    def __post_init__(self):
        if not self.preferred_network:
            self.preferred_network = self.network

    def can_transition_to(self, new_state: RouteState) -> bool:
        """Check if transition to new_state is valid."""
        return new_state in VALID_TRANSITIONS.get(self.state, [])

    def transition_to(
        self,
        new_state: RouteState,
        reason: str = "",
        network: Optional[str] = None,
    ) -> StateTransition:
        """
        Transition to a new state, optionally replacing the active network.

        Raises InvalidTransitionError if transition is not valid.
        """
        if not self.can_transition_to(new_state):
            raise InvalidTransitionError(
                f"Cannot transition from {self.state.value} to {new_state.value}. "
                f"Valid transitions: {[s.value for s in VALID_TRANSITIONS.get(self.state, [])]}",
                details={"token": self.token, "network": self.network},
            )

        if network is not None:
            self.network = network

        transition = StateTransition(
            from_state=self.state,
            to_state=new_state,
            network=self.network,
            reason=reason,
        )
        self.history.append(transition)
        self.state = new_state
        return transition

    @property
    def is_terminal(self) -> bool:
        """Check if current state is terminal."""
        return len(VALID_TRANSITIONS.get(self.state, [])) == 0

    @property
    def rerouted(self) -> bool:
        return self.network != self.preferred_network

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "token": self.token,
            "state": self.state.value,
            "network": self.network,
            "preferred_network": self.preferred_network,
            "is_terminal": self.is_terminal,
            "history": [
                {
                    "from_state": t.from_state.value,
                    "to_state": t.to_state.value,
                    "network": t.network,
                    "timestamp": t.timestamp,
                    "reason": t.reason,
                }
                for t in self.history
            ],
        }
