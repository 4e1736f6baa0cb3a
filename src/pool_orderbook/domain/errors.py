"""
Domain Error Taxonomy.

All domain-specific exceptions with clear categorization.

Every error carries a ``transient`` flag. Transient errors describe a
condition that may clear on its own (socket dropped, node briefly
unreachable) and are eligible for a supervised restart. Everything else is
fatal to the unit of work that raised it.
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """
    Base class for all domain errors.

    Includes structured error info for logging and debugging.
    """

    error_code: str = "DOMAIN_ERROR"
    transient: bool = False

    def __init__(
        self,
        message: str,
        *,
        pair: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.pair = pair
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for logging."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "pair": self.pair,
            "transient": self.transient,
            "details": self.details,
        }


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(DomainError):
    """Invalid input or state."""

    error_code = "VALIDATION_ERROR"


class HexParseError(ValidationError):
    """Hex string is not a valid 256-bit unsigned integer."""

    error_code = "HEX_PARSE_ERROR"


class UnknownAssetError(ValidationError):
    """Asset symbol missing from the decimals table."""

    error_code = "UNKNOWN_ASSET"


class InvalidAssetPairError(ValidationError):
    """Asset pair string could not be parsed."""

    error_code = "INVALID_ASSET_PAIR"


# =============================================================================
# Protocol Errors
# =============================================================================


class ProtocolError(DomainError):
    """The node sent something we cannot attribute or understand."""

    error_code = "PROTOCOL_ERROR"


class UnknownFrameError(ProtocolError):
    """Websocket frame matches none of the known shapes."""

    error_code = "UNKNOWN_FRAME"


class UnknownSubscriptionError(ProtocolError):
    """Push update names a subscription id we never registered."""

    error_code = "UNKNOWN_SUBSCRIPTION"


class UnknownRequestError(ProtocolError):
    """Acknowledgement names a request id we are not waiting on."""

    error_code = "UNKNOWN_REQUEST"


class RpcError(ProtocolError):
    """Node answered a JSON-RPC call with an error object."""

    error_code = "RPC_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: int | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.code = code
        self.details["code"] = code


# =============================================================================
# Transport Errors
# =============================================================================


class TransportError(DomainError):
    """Socket or HTTP failure talking to the node."""

    error_code = "TRANSPORT_ERROR"
    transient = True


class ConnectionLostError(TransportError):
    """Websocket connection dropped or could not be established."""

    error_code = "CONNECTION_LOST"


# =============================================================================
# Wiring / Channel Errors
# =============================================================================


class StreamNotReadyError(DomainError):
    """Price stream for a pair is not available yet."""

    error_code = "STREAM_NOT_READY"
    transient = True


class LiquidityUnavailableError(DomainError):
    """Node returned no liquidity snapshot for a pair."""

    error_code = "LIQUIDITY_UNAVAILABLE"
    transient = True


class ChannelClosedError(DomainError):
    """The producing side of a channel is gone."""

    error_code = "CHANNEL_CLOSED"


class ProviderClosedError(ChannelClosedError):
    """The pool info provider has terminated and will not answer."""

    error_code = "PROVIDER_CLOSED"


class ConsumerGoneError(DomainError):
    """The consuming side of a channel is gone; publishing is pointless."""

    error_code = "CONSUMER_GONE"


def is_transient(exc: BaseException) -> bool:
    """Whether a failure is worth a supervised restart."""
    return isinstance(exc, DomainError) and exc.transient
