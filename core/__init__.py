"""Core module - provider-neutral sync engine and canonical data.

This module contains the canonical entity models, storage adapters, SIE
handling, observability, and the incremental sync engine. It is
intentionally provider-agnostic.

Provider-specific logic (Fortnox, Visma, etc.) belongs in /providers/.
"""

__version__ = "1.0.0"
