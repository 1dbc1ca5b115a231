"""
Execution Engine - Order State Machine.

============================================================
PURPOSE
============================================================
Tracks a buy order through execution with strict state
transitions.

STATE MACHINE:

    VALIDATED ──► PRICED ──► INVENTORY_CHECKED ──► FUNDS_CHECKED ──► COMMITTED
        │           │               │                    │
        └───────────┴───────────────┴────────────────────┴──────► REJECTED

INVARIANTS:
- Terminal states (COMMITTED, REJECTED) are final
- Stages cannot be skipped
- All transitions are logged

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from .errors import InvalidStateTransitionError
from .types import ExecutionStage


logger = logging.getLogger(__name__)


# ============================================================
# STATE TRANSITION RULES
# ============================================================

VALID_TRANSITIONS: Dict[ExecutionStage, Set[ExecutionStage]] = {
    ExecutionStage.VALIDATED: {
        ExecutionStage.PRICED,
        ExecutionStage.REJECTED,
    },
    ExecutionStage.PRICED: {
        ExecutionStage.INVENTORY_CHECKED,
        ExecutionStage.REJECTED,
    },
    ExecutionStage.INVENTORY_CHECKED: {
        ExecutionStage.FUNDS_CHECKED,
        ExecutionStage.REJECTED,
    },
    ExecutionStage.FUNDS_CHECKED: {
        ExecutionStage.COMMITTED,
        ExecutionStage.REJECTED,
    },
    # Terminal states - no transitions out
    ExecutionStage.COMMITTED: set(),
    ExecutionStage.REJECTED: set(),
}


# ============================================================
# STATE TRANSITION EVENT
# ============================================================

@dataclass
class StateTransitionEvent:
    """Event representing a state transition."""

    order_ref: str
    """Order reference (for logs)."""

    from_state: ExecutionStage
    """Previous state."""

    to_state: ExecutionStage
    """New state."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    """When transition occurred."""

    reason: str = ""
    """Reason for transition."""

    details: Dict[str, Any] = field(default_factory=dict)
    """Additional details."""


# ============================================================
# EXECUTION STATE MACHINE
# ============================================================

class ExecutionStateMachine:
    """
    State machine for one buy order.

    Created once the order has passed validation.
    """

    def __init__(self, order_ref: str):
        self._order_ref = order_ref
        self._state = ExecutionStage.VALIDATED
        self._history: List[StateTransitionEvent] = []

    @property
    def current_state(self) -> ExecutionStage:
        return self._state

    @property
    def history(self) -> List[StateTransitionEvent]:
        return list(self._history)

    def can_transition_to(self, target_state: ExecutionStage) -> bool:
        return target_state in VALID_TRANSITIONS.get(self._state, set())

    def transition_to(
        self,
        target_state: ExecutionStage,
        reason: str = "",
        details: Optional[Dict[str, Any]] = None,
    ) -> StateTransitionEvent:
        """
        Move to a new state.

        Raises:
            InvalidStateTransitionError: transition not allowed
        """
        if not self.can_transition_to(target_state):
            if self._state.is_terminal():
                why = f"cannot leave terminal state {self._state.value}"
            else:
                why = f"invalid transition {self._state.value} -> {target_state.value}"
            raise InvalidStateTransitionError(f"Order {self._order_ref}: {why}")

        event = StateTransitionEvent(
            order_ref=self._order_ref,
            from_state=self._state,
            to_state=target_state,
            reason=reason,
            details=details or {},
        )
        self._state = target_state
        self._history.append(event)

        logger.debug(
            f"Order {self._order_ref}: {event.from_state.value} -> {event.to_state.value}"
            + (f" ({reason})" if reason else "")
        )
        return event

    def reject(self, reason: str, error_code: Optional[str] = None) -> Optional[StateTransitionEvent]:
        """
        Mark the order rejected.

        No-op if already terminal, so error paths can call it unconditionally.
        """
        if self._state.is_terminal():
            return None
        return self.transition_to(
            ExecutionStage.REJECTED,
            reason,
            details={"error_code": error_code} if error_code else {},
        )

    def is_terminal(self) -> bool:
        return self._state.is_terminal()
