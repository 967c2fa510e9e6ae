"""
Exception hierarchy for the decision bridge.

Every error raised inside one request's lifecycle derives from BridgeError
so the handler can turn it into a HOLD fallback without catching unrelated
failures by accident.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class BridgeError(Exception):
    """Base class for bridge errors.

    Carries an optional context dictionary that is appended to the string
    form for log output.
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            msg = f"{msg} | Context: {ctx_str}"
        return msg


class AuthError(BridgeError):
    """Presented credential is missing or does not match the shared secret."""


class InputError(BridgeError):
    """Caller supplied no usable market context."""


class ConfigurationError(BridgeError):
    """Required configuration (e.g. the provider API key) is missing."""


class UpstreamError(BridgeError):
    """
    Completion provider call failed.

    Examples:
    - Non-200 status
    - Envelope without a text completion
    - Network error or timeout
    """

    @property
    def timed_out(self) -> bool:
        return bool(self.context.get("timeout"))


class ParseError(BridgeError):
    """Neither reply dialect could extract a candidate decision."""


class ValidationError(BridgeError):
    """Candidate could not be coerced into a TradeDecision."""


class InvalidDecisionKind(ValidationError):
    """Candidate names a decision outside the closed set."""
