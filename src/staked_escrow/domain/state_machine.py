"""Deal State Machine Guard.

Uses python-statemachine to enforce legal state transitions at the domain level.
No matter what the API or a service does, an illegal transition
(e.g., CREATED -> CLOSED) will raise TransitionNotAllowed.

The state machine is instantiated per-deal and validates transitions before
the ORM model's state field is updated. Caller identity, registry membership
and time windows are checked by DealService; this guard only knows the graph.

Transition table:
    CREATED    -> APPLIED     (influencer_accepts)
    APPLIED    -> VALIDATED   (validator_validates)
    APPLIED    -> REJECTED    (validator_rejects)
    APPLIED    -> APPEAL      (business_appeals, after validator silence)
    REJECTED   -> APPEAL      (business_appeals)
    VALIDATED  -> CLOSED      (payment_withdrawn)
    APPEAL     -> CLOSED      (moderator_rules)
"""

from __future__ import annotations

from statemachine import State, StateMachine


class DealStateMachine(StateMachine):
    """State machine that guards deal lifecycle transitions.

    Usage:
        sm = DealStateMachine(current_state="APPLIED")
        sm.validator_validates()  # transitions to VALIDATED
        sm.deal_state             # "VALIDATED"
    """

    # --- States ---
    CREATED = State("CREATED", initial=True)
    APPLIED = State("APPLIED")
    REJECTED = State("REJECTED")
    VALIDATED = State("VALIDATED")
    APPEAL = State("APPEAL")
    CLOSED = State("CLOSED", final=True)

    # --- Events / Transitions ---

    # Acceptance
    influencer_accepts = CREATED.to(APPLIED)

    # Attestation
    validator_validates = APPLIED.to(VALIDATED)
    validator_rejects = APPLIED.to(REJECTED)

    # Escalation
    business_appeals = REJECTED.to(APPEAL) | APPLIED.to(APPEAL)

    # Settlement
    payment_withdrawn = VALIDATED.to(CLOSED)
    moderator_rules = APPEAL.to(CLOSED)

    def __init__(self, current_state: str = "CREATED") -> None:
        """Initialize the state machine at a given deal state.

        Args:
            current_state: The current DealState value (e.g., "APPLIED").
        """
        valid_values = {s.value for s in self.states}
        if current_state not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown state '{current_state}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_state)

    @property
    def deal_state(self) -> str:
        """Return the current state value as a string (matches DealState enum)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return a list of event names that can fire from the current state."""
        return [event.id for event in self.allowed_events]


def validate_transition(current_state: str, event_name: str) -> str:
    """Validate a deal transition and return the new state.

    Args:
        current_state: Current DealState value.
        event_name: The event to fire (e.g., "influencer_accepts").

    Returns:
        The new state string after the transition.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the state or event name is invalid.
    """
    sm = DealStateMachine(current_state=current_state)

    event_method = getattr(sm, event_name, None)
    if event_method is None or not callable(event_method):
        raise ValueError(
            f"Unknown event '{event_name}'. "
            f"Allowed events from {current_state}: {sm.get_allowed_events()}"
        )

    event_method()
    return sm.deal_state
