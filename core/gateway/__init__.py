"""On-demand resource gateway."""

from core.gateway.handler import GatewayHandler

__all__ = ["GatewayHandler"]
