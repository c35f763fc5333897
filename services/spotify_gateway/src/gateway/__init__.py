"""Call gateway and its injected context."""

from .call_gateway import CallGateway
from .context import GatewayContext, RateLimitGate

__all__ = ["CallGateway", "GatewayContext", "RateLimitGate"]
