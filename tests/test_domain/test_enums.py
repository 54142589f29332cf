"""Tests for domain enumerations."""

from __future__ import annotations

from staked_escrow.domain.enums import DEAL_RESULTS, AgentRole, DealState, EventType


class TestAgentRole:
    def test_roles(self) -> None:
        assert {r.value for r in AgentRole} == {"VALIDATOR", "MODERATOR"}

    def test_role_is_str_enum(self) -> None:
        assert isinstance(AgentRole.VALIDATOR, str)
        assert AgentRole("MODERATOR") is AgentRole.MODERATOR


class TestDealState:
    def test_all_states_exist(self) -> None:
        expected = {"CREATED", "APPLIED", "REJECTED", "VALIDATED", "APPEAL", "CLOSED"}
        assert {s.value for s in DealState} == expected

    def test_state_is_str_enum(self) -> None:
        assert DealState.CREATED == "CREATED"

    def test_only_validated_and_rejected_are_results(self) -> None:
        assert DEAL_RESULTS == {DealState.VALIDATED, DealState.REJECTED}


class TestEventType:
    def test_all_event_types_exist(self) -> None:
        # 5 registry + 2 deal
        assert len(EventType) == 7

    def test_event_type_is_str_enum(self) -> None:
        assert isinstance(EventType.DEAL_STATE_CHANGED, str)
