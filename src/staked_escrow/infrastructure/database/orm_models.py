"""SQLAlchemy 2.0 ORM models for the Staked Escrow protocol.

Five tables:
    1. agents            : Staked validators and moderators, one row per address.
    2. slash_requests    : Peer accusations against agents.
    3. slash_approvals   : Distinct moderator approvals per slash request.
    4. deals             : Escrow agreements between business and influencer.
    5. protocol_events   : Append-only log of every protocol notification.

Design decisions:
    - Addresses as 42-char strings; agents are keyed by address.
    - UUIDs as primary keys for slash requests and deals.
    - BigInteger for ledger amounts (integer base units, no floats).
    - Unix-second integers for every protocol timestamp, so deadline checks
      compare plain integers against the injected clock.
    - CHECK constraints on role and state enums and on amount bounds.
    - protocol_events is append-only: no UPDATE or DELETE at the application level.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests and simulation)
JSONVariant = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# 1. agents
# ---------------------------------------------------------------------------
class Agent(Base):
    """A staked participant acting as validator or moderator."""

    __tablename__ = "agents"

    address: Mapped[str] = mapped_column(
        String(42),
        primary_key=True,
        comment="Ledger address of the agent",
    )
    role: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="AgentRole value, fixed until the agent leaves or is slashed",
    )
    collateral: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Stake deposited at join time, held in registry custody",
    )
    joined_at: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Unix timestamp of registration",
    )

    __table_args__ = (
        CheckConstraint("role IN ('VALIDATOR', 'MODERATOR')", name="ck_agent_valid_role"),
        CheckConstraint("collateral > 0", name="ck_agent_positive_collateral"),
        Index("idx_agent_role", "role"),
    )

    def __repr__(self) -> str:
        return f"<Agent address={self.address} role={self.role} collateral={self.collateral}>"


# ---------------------------------------------------------------------------
# 2. slash_requests
# ---------------------------------------------------------------------------
class SlashRequest(Base):
    """A moderator's accusation against an agent, open until executed or expired."""

    __tablename__ = "slash_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    target: Mapped[str] = mapped_column(
        String(42),
        nullable=False,
        comment="Agent address under accusation",
    )
    requester: Mapped[str] = mapped_column(
        String(42),
        nullable=False,
        comment="Moderator who opened the request",
    )
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    deadline: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Last unix timestamp at which the request can be approved or executed",
    )
    executed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    executed_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True, default=None)
    forfeited_collateral: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
        default=None,
        comment="Collateral kept by the registry when the request was executed",
    )

    __table_args__ = (
        CheckConstraint("deadline >= created_at", name="ck_slash_deadline_after_creation"),
        Index("idx_slash_target", "target"),
        Index("idx_slash_executed", "executed"),
    )

    def is_open(self, now: int) -> bool:
        """Whether the request can still be approved or executed at ``now``."""
        return not self.executed and now <= self.deadline

    def __repr__(self) -> str:
        return (
            f"<SlashRequest id={self.id} target={self.target} "
            f"deadline={self.deadline} executed={self.executed}>"
        )


# ---------------------------------------------------------------------------
# 3. slash_approvals
# ---------------------------------------------------------------------------
class SlashApproval(Base):
    """One moderator's approval of one slash request."""

    __tablename__ = "slash_approvals"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("slash_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    approver: Mapped[str] = mapped_column(String(42), nullable=False)
    approved_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("request_id", "approver", name="uq_slash_approval_once"),
        Index("idx_approval_request", "request_id"),
    )

    def __repr__(self) -> str:
        return f"<SlashApproval request={self.request_id} approver={self.approver}>"


# ---------------------------------------------------------------------------
# 4. deals
# ---------------------------------------------------------------------------
class Deal(Base):
    """An escrow agreement between a business and an influencer."""

    __tablename__ = "deals"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- Participants ---
    business: Mapped[str] = mapped_column(
        String(42),
        nullable=False,
        comment="Funding party; the only one who may appeal",
    )
    validator: Mapped[str] = mapped_column(
        String(42),
        nullable=False,
        comment="Agent expected to attest the outcome",
    )
    influencer: Mapped[str] = mapped_column(
        String(42),
        nullable=False,
        comment="Counterparty who accepts and collects on validation",
    )

    # --- Terms ---
    content: Mapped[bytes] = mapped_column(
        LargeBinary(32),
        nullable=False,
        comment="Opaque 32-byte reference to the work item",
    )
    amount: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Escrowed value pulled from the business at creation",
    )
    application_deadline: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Anchor for the validator silence window",
    )

    # --- Lifecycle (guarded by DealStateMachine) ---
    state: Mapped[str] = mapped_column(String(16), nullable=False, default="CREATED")
    result: Mapped[str | None] = mapped_column(String(16), nullable=True, default=None)
    verdict_beneficiary: Mapped[str | None] = mapped_column(
        String(42), nullable=True, default=None
    )
    moderator: Mapped[str | None] = mapped_column(String(42), nullable=True, default=None)
    accepted_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True, default=None)
    result_submitted_at: Mapped[int | None] = mapped_column(
        BigInteger, nullable=True, default=None
    )
    appealed_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True, default=None)
    closed_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True, default=None)

    # --- Settlement ---
    fee_recipient: Mapped[str | None] = mapped_column(String(42), nullable=True, default=None)
    fee_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True, default=None)
    payout_recipient: Mapped[str | None] = mapped_column(
        String(42), nullable=True, default=None
    )
    payout_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True, default=None)

    __table_args__ = (
        CheckConstraint(
            "state IN ('CREATED', 'APPLIED', 'REJECTED', 'VALIDATED', 'APPEAL', 'CLOSED')",
            name="ck_deal_valid_state",
        ),
        CheckConstraint(
            "result IS NULL OR result IN ('VALIDATED', 'REJECTED')",
            name="ck_deal_valid_result",
        ),
        CheckConstraint("amount > 0", name="ck_deal_positive_amount"),
        CheckConstraint(
            "fee_amount IS NULL OR fee_amount + payout_amount = amount",
            name="ck_deal_settlement_conserves_amount",
        ),
        Index("idx_deal_state", "state"),
        Index("idx_deal_business", "business"),
        Index("idx_deal_influencer", "influencer"),
        Index("idx_deal_validator", "validator"),
    )

    def __repr__(self) -> str:
        return f"<Deal id={self.id} state={self.state} amount={self.amount}>"


# ---------------------------------------------------------------------------
# 5. protocol_events (Append-Only Notification Log)
# ---------------------------------------------------------------------------
class ProtocolEvent(Base):
    """Immutable record of one registry or deal notification.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level.
    """

    __tablename__ = "protocol_events"

    # Autoincrementing so events sharing a timestamp keep their emission order
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    event_type: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        comment="EventType enum value (e.g., AGENT_JOINED, DEAL_STATE_CHANGED)",
    )
    subject_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Agent address, slash request ID or deal ID the event is about",
    )
    actor: Mapped[str] = mapped_column(
        String(42),
        nullable=False,
        comment="Address whose call produced the event",
    )
    payload: Mapped[dict | None] = mapped_column(
        JSONVariant,
        nullable=True,
        default=None,
    )
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("idx_event_subject", "subject_id"),
        Index("idx_event_type", "event_type"),
    )

    def __repr__(self) -> str:
        return f"<ProtocolEvent type={self.event_type} subject={self.subject_id}>"
