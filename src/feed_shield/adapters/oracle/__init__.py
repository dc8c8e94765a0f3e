"""Classification oracle client and transports."""

from feed_shield.adapters.oracle.anthropic_transport import AnthropicTransport
from feed_shield.adapters.oracle.client import OracleClient
from feed_shield.adapters.oracle.relay_transport import RelayTransport

__all__ = ["AnthropicTransport", "OracleClient", "RelayTransport"]
