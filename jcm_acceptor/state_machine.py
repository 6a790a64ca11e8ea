"""
Acceptor session state machine.

The acceptor only reports status snapshots, and several of them are
ambiguous on their own. The controller therefore keeps its own session
state and derives the next one from (session state, incoming status)
through an explicit transition table.

This module performs no I/O. It returns the action the controller has
to carry out (send STACK, credit the ledger, re-enable, ...).
"""

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Final, Optional

from .catalog import get_denomination, get_status_name, parse_status
from .constants import DeviceStatus


logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Controller's belief about where the acceptor is in a bill cycle."""
    UNKNOWN = auto()
    ENABLED = auto()
    ACCEPTING = auto()
    ESCROW = auto()
    STACKING = auto()
    STACKED = auto()
    REJECTING = auto()
    RETURNING = auto()
    REBOOTED_WITH_BILL = auto()
    JAM_IN_ACCEPTOR = auto()


class Action(Enum):
    """Side effect requested by a transition."""
    NONE = auto()
    STACK = auto()               # Send STACK-1 for the note in escrow
    RETURN = auto()              # Send RETURN for an unrecognised note
    CREDIT = auto()              # Credit the pending note, then ACK
    ENABLE = auto()              # Re-enable without reset
    ENABLE_WITH_RESET = auto()   # Re-enable, resetting if just powered


@dataclass(frozen=True)
class TransitionRule:
    """
    One row of the transition table.

    Attributes:
        sources: Session states the rule applies in (None: any state).
        status: Incoming device status.
        target: Next session state (None: keep the current one).
        action: Side effect for the controller.
        message: Logged at INFO when the rule fires.
    """
    sources: Optional[frozenset[SessionState]]
    status: DeviceStatus
    target: Optional[SessionState]
    action: Action = Action.NONE
    message: Optional[str] = None

    def matches(self, state: SessionState, status: DeviceStatus) -> bool:
        if status != self.status:
            return False
        return self.sources is None or state in self.sources


S = SessionState

TRANSITION_TABLE: Final[tuple[TransitionRule, ...]] = (
    TransitionRule(None, DeviceStatus.IDLING, S.ENABLED),
    TransitionRule(frozenset({S.ENABLED}), DeviceStatus.ACCEPTING, S.ACCEPTING),
    TransitionRule(
        frozenset({S.ACCEPTING}), DeviceStatus.ESCROW, S.ESCROW, Action.STACK,
    ),
    TransitionRule(
        frozenset({S.ACCEPTING, S.STACKING}), DeviceStatus.REJECTING, S.REJECTING,
        message="REJECTING BILL",
    ),
    TransitionRule(frozenset({S.ESCROW}), DeviceStatus.STACKING, S.STACKING),
    TransitionRule(
        frozenset({S.STACKING}), DeviceStatus.POWER_UP_BILL_STACKER,
        S.REBOOTED_WITH_BILL, Action.ENABLE_WITH_RESET,
        message="POWER REBOOTED WITH BILL IN STACKER, RESETTING",
    ),
    TransitionRule(
        frozenset({S.STACKING}), DeviceStatus.VEND_VALID, S.STACKED, Action.CREDIT,
    ),
    TransitionRule(
        frozenset({S.REJECTING}), DeviceStatus.JAM_IN_ACCEPTOR, S.JAM_IN_ACCEPTOR,
        message="BILL STUCK",
    ),
    TransitionRule(
        frozenset({S.JAM_IN_ACCEPTOR}), DeviceStatus.INHIBIT, None, Action.ENABLE,
        message="BILL STUCK CLEARED, RE-ENABLING NOW",
    ),
)

del S

# States in which a note value may be waiting for VEND VALID
_PENDING_STATES: Final[frozenset[SessionState]] = frozenset({
    SessionState.ESCROW,
    SessionState.STACKING,
})

# JAM IN ACCEPTOR is only fatal outside the reject/jam path
_JAM_TOLERANT_STATES: Final[frozenset[SessionState]] = frozenset({
    SessionState.REJECTING,
    SessionState.JAM_IN_ACCEPTOR,
})


@dataclass(frozen=True)
class StepResult:
    """
    Outcome of feeding one status into the state machine.

    Attributes:
        previous_state: Session state before the step.
        current_state: Session state after the step.
        status_code: Raw status byte that was processed.
        action: Side effect the controller must perform.
        rule: Matching rule, None when the pair is unmodelled.
        note_value: Escrowed value (STACK) or value to credit (CREDIT).
        note_code: Note code from the status frame, if any.
    """
    previous_state: SessionState
    current_state: SessionState
    status_code: int
    action: Action = Action.NONE
    rule: Optional[TransitionRule] = None
    note_value: Optional[int] = None
    note_code: Optional[int] = None

    @property
    def matched(self) -> bool:
        return self.rule is not None

    @property
    def changed(self) -> bool:
        return self.previous_state != self.current_state


class AcceptorStateMachine:
    """
    Session state tracker for one acceptor.

    Unmodelled (state, status) pairs are silent no-ops: the acceptor may
    report intermediate or duplicate statuses between polls.

    Attributes:
        state: Current session state.
        pending_note_value: Value of the note last seen in escrow, until
            it is credited or lost.
    """

    def __init__(self, transitions: tuple[TransitionRule, ...] = TRANSITION_TABLE) -> None:
        self._transitions = transitions
        self._state = SessionState.UNKNOWN
        self._pending_note_value: Optional[int] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pending_note_value(self) -> Optional[int]:
        return self._pending_note_value

    def is_recoverable_fault(self, status_code: int) -> bool:
        """
        Check if a failure-category status is part of the jam recovery path.

        JAM IN ACCEPTOR reported while a bill is being rejected (or while
        the jam is already being tracked) is handled by the transition
        table instead of stopping the controller.
        """
        return (
            status_code == DeviceStatus.JAM_IN_ACCEPTOR
            and self._state in _JAM_TOLERANT_STATES
        )

    def find_rule(
        self,
        state: SessionState,
        status_code: int,
    ) -> Optional[TransitionRule]:
        """First rule matching (state, status), or None."""
        status = parse_status(status_code)
        if status is None:
            return None
        for rule in self._transitions:
            if rule.matches(state, status):
                return rule
        return None

    def advance(self, status_code: int, note_code: Optional[int] = None) -> StepResult:
        """
        Process one status snapshot.

        Args:
            status_code: Raw status byte.
            note_code: Data byte following the status (ESCROW note code).

        Returns:
            Step result with the action to perform.
        """
        previous = self._state
        rule = self.find_rule(previous, status_code)
        if rule is None:
            return StepResult(
                previous_state=previous,
                current_state=previous,
                status_code=status_code,
                note_code=note_code,
            )

        target = rule.target or previous
        action = rule.action
        note_value: Optional[int] = None

        if action is Action.STACK:
            note_value = get_denomination(note_code)
            if note_value is None:
                code_str = f"0x{note_code:02X}" if note_code is not None else "none"
                logger.warning(f"Unknown note code {code_str} in escrow, returning bill")
                target = SessionState.RETURNING
                action = Action.RETURN
            self._pending_note_value = note_value
        elif action is Action.CREDIT:
            note_value = self._pending_note_value
            self._pending_note_value = None
            if note_value is None:
                logger.warning("VEND VALID without a pending note, nothing to credit")

        if target not in _PENDING_STATES:
            self._pending_note_value = None

        if rule.message:
            logger.info(rule.message)

        if target != previous:
            logger.debug(
                f"Session {previous.name} -> {target.name} "
                f"on {get_status_name(status_code)}"
            )
        self._state = target

        return StepResult(
            previous_state=previous,
            current_state=target,
            status_code=status_code,
            action=action,
            rule=rule,
            note_value=note_value,
            note_code=note_code,
        )
