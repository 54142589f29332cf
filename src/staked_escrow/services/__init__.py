"""Application services: use case orchestration."""

from staked_escrow.services.agent_registry_service import AgentRegistryService
from staked_escrow.services.deal_service import DealService

__all__ = ["AgentRegistryService", "DealService"]
