"""Domain exceptions for the Staked Escrow protocol.

These exceptions are framework-agnostic and represent business rule violations.
Every one is raised before any state mutation or fund movement. They are caught
and translated to HTTP responses by the API layer's middleware, keyed on the
category base classes below.
"""

from __future__ import annotations


class EscrowProtocolError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "ESCROW_PROTOCOL_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Categories ---


class AuthorizationError(EscrowProtocolError):
    """The caller lacks the membership or deal role the operation requires."""


class StateConflictError(EscrowProtocolError):
    """The operation conflicts with the current registry or deal state."""


class InvalidInputError(EscrowProtocolError):
    """An argument is outside the values the operation accepts."""


class NotFoundError(EscrowProtocolError):
    """A referenced agent, slash request or deal does not exist."""


# --- Authorization Errors ---


class NotRegisteredError(AuthorizationError):
    """Raised when the caller holds no agent entry, or one of the wrong role."""

    def __init__(self, address: str, required_role: str | None = None) -> None:
        if required_role is None:
            message = f"Address is not a registered agent: {address}"
        else:
            message = f"Address is not a registered {required_role.lower()}: {address}"
        super().__init__(message=message, code="NOT_REGISTERED")
        self.address = address
        self.required_role = required_role


class CallerMismatchError(AuthorizationError):
    """Raised when the caller is not the deal party the operation requires."""

    def __init__(self, deal_id: str, caller: str, expected_party: str) -> None:
        super().__init__(
            message=f"Caller {caller} is not the {expected_party} of deal {deal_id}",
            code="CALLER_MISMATCH",
        )
        self.deal_id = deal_id
        self.caller = caller
        self.expected_party = expected_party


class NotArbiterError(AuthorizationError):
    """Raised when someone other than the registry arbiter executes a slash."""

    def __init__(self, caller: str) -> None:
        super().__init__(
            message=f"Only the registry arbiter may execute slash requests, not {caller}",
            code="NOT_ARBITER",
        )
        self.caller = caller


# --- State Errors ---


class InvalidStateTransitionError(StateConflictError):
    """Raised when an attempted deal transition is not allowed.

    Example: CREATED -> CLOSED (must go through APPLIED and VALIDATED or APPEAL)
    """

    def __init__(self, current_state: str, attempted_state: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {current_state} -> {attempted_state}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_state = attempted_state


class AlreadyRegisteredError(StateConflictError):
    """Raised when an address that already holds a role tries to join again."""

    def __init__(self, address: str, role: str) -> None:
        super().__init__(
            message=f"Address already registered as {role.lower()}: {address}",
            code="ALREADY_REGISTERED",
        )
        self.address = address
        self.role = role


class DuplicateSlashRequestError(StateConflictError):
    """Raised when an open slash request already targets the same agent."""

    def __init__(self, target: str, open_request_id: str) -> None:
        super().__init__(
            message=f"Open slash request {open_request_id} already targets {target}",
            code="DUPLICATE",
        )
        self.target = target
        self.open_request_id = open_request_id


class PendingSlashRequestError(StateConflictError):
    """Raised when an agent tries to leave while an open slash request targets them."""

    def __init__(self, address: str, request_id: str) -> None:
        super().__init__(
            message=f"Agent {address} cannot leave while slash request {request_id} is open",
            code="PENDING_SLASH_REQUEST",
        )
        self.address = address
        self.request_id = request_id


class SlashRequestClosedError(StateConflictError):
    """Raised when executing a slash request that was executed or has expired."""

    def __init__(self, request_id: str, reason: str) -> None:
        super().__init__(
            message=f"Slash request {request_id} is closed: {reason}",
            code="SLASH_REQUEST_CLOSED",
        )
        self.request_id = request_id
        self.reason = reason


class QuorumNotReachedError(StateConflictError):
    """Raised when executing a slash request without enough approvals."""

    def __init__(self, request_id: str, approvals: int, required: int) -> None:
        super().__init__(
            message=(
                f"Slash request {request_id} has {approvals} approval(s), "
                f"{required} required"
            ),
            code="QUORUM_NOT_REACHED",
        )
        self.request_id = request_id
        self.approvals = approvals
        self.required = required


class ApplicationDeadlinePassedError(StateConflictError):
    """Raised when the influencer accepts a deal after its application deadline."""

    def __init__(self, deal_id: str, deadline: int) -> None:
        super().__init__(
            message=f"Application deadline {deadline} has passed for deal {deal_id}",
            code="APPLICATION_DEADLINE_PASSED",
        )
        self.deal_id = deal_id
        self.deadline = deadline


class DealCannotBeAppealedError(StateConflictError):
    """Raised when neither a rejection nor validator silence allows an appeal."""

    def __init__(self, deal_id: str, state: str) -> None:
        super().__init__(
            message=f"Deal {deal_id} cannot be appealed in state {state}",
            code="DEAL_CANNOT_BE_APPEALED",
        )
        self.deal_id = deal_id
        self.state = state


# --- Value Errors ---


class InvalidStakeAmountError(InvalidInputError):
    """Raised when a deposit does not equal the role's required stake."""

    def __init__(self, role: str, required: int, deposited: int) -> None:
        super().__init__(
            message=f"Invalid stake for {role.lower()}: required {required}, deposited {deposited}",
            code="INVALID_STAKE_AMOUNT",
        )
        self.role = role
        self.required = required
        self.deposited = deposited


class InvalidDealResultError(InvalidInputError):
    """Raised when a validator attests to something other than VALIDATED or REJECTED."""

    def __init__(self, result: str) -> None:
        super().__init__(
            message=f"Invalid deal result: {result}. Expected VALIDATED or REJECTED",
            code="INVALID_DEAL_RESULT",
        )
        self.result = result


class InvalidBeneficiaryError(InvalidInputError):
    """Raised when a verdict names neither the business nor the influencer."""

    def __init__(self, deal_id: str, beneficiary: str) -> None:
        super().__init__(
            message=f"Beneficiary {beneficiary} is not a party to deal {deal_id}",
            code="INVALID_BENEFICIARY",
        )
        self.deal_id = deal_id
        self.beneficiary = beneficiary


class InvalidDealParametersError(InvalidInputError):
    """Raised when a deal proposal carries unusable amount, content or deadline."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_DEAL_PARAMETERS")


# --- Lookup Errors ---


class AgentNotFoundError(NotFoundError):
    """Raised when an address has no agent entry."""

    def __init__(self, address: str) -> None:
        super().__init__(
            message=f"Agent not found: {address}",
            code="AGENT_NOT_FOUND",
        )
        self.address = address


class SlashRequestNotFoundError(NotFoundError):
    """Raised when a slash request does not exist or is no longer open."""

    def __init__(self, request_id: str) -> None:
        super().__init__(
            message=f"Slash request not found: {request_id}",
            code="SLASH_REQUEST_NOT_FOUND",
        )
        self.request_id = request_id


class DealNotFoundError(NotFoundError):
    """Raised when a deal ID does not exist."""

    def __init__(self, deal_id: str) -> None:
        super().__init__(
            message=f"Deal not found: {deal_id}",
            code="DEAL_NOT_FOUND",
        )
        self.deal_id = deal_id


# --- Ledger Errors ---


class LedgerError(EscrowProtocolError):
    """Raised when a value ledger transfer fails."""

    def __init__(self, message: str, code: str = "LEDGER_ERROR") -> None:
        super().__init__(message=message, code=code)


class InsufficientFundsError(LedgerError):
    """Raised when an account balance cannot cover a transfer."""

    def __init__(self, account: str, required: int, available: int) -> None:
        super().__init__(
            message=f"Insufficient funds in {account}: required {required}, available {available}",
            code="INSUFFICIENT_FUNDS",
        )
        self.account = account
        self.required = required
        self.available = available


class InsufficientAllowanceError(LedgerError):
    """Raised when a pull transfer exceeds what the owner authorized."""

    def __init__(self, owner: str, spender: str, required: int, available: int) -> None:
        super().__init__(
            message=(
                f"Insufficient allowance from {owner} to {spender}: "
                f"required {required}, authorized {available}"
            ),
            code="INSUFFICIENT_ALLOWANCE",
        )
        self.owner = owner
        self.spender = spender
        self.required = required
        self.available = available
