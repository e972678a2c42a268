"""Fortnox provider."""

from providers.fortnox.client import FORTNOX_RATE_LIMIT, FortnoxClient
from providers.fortnox.config import FORTNOX_ENTITIES
from providers.fortnox.provider import FortnoxProvider

__all__ = ["FortnoxClient", "FortnoxProvider", "FORTNOX_ENTITIES", "FORTNOX_RATE_LIMIT"]
