"""Visma eAccounting provider."""

from providers.visma.client import VISMA_RATE_LIMIT, VismaClient
from providers.visma.config import VISMA_ENTITIES
from providers.visma.provider import VismaProvider

__all__ = ["VismaClient", "VismaProvider", "VISMA_ENTITIES", "VISMA_RATE_LIMIT"]
