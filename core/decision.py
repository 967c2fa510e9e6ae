"""
Trade decision schema.

This module defines the fixed output contract returned to the trading
client: the closed set of decision kinds and the immutable TradeDecision
record that every response body is serialized from.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet


class DecisionKind(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    CLOSE = "CLOSE"
    CLOSE_AND_REVERSE_BUY = "CLOSE_AND_REVERSE_BUY"
    CLOSE_AND_REVERSE_SELL = "CLOSE_AND_REVERSE_SELL"
    HOLD = "HOLD"


DECISION_TOKENS: FrozenSet[str] = frozenset(kind.value for kind in DecisionKind)

# Kinds that open a position and therefore need a full risk envelope.
ORDER_KINDS: FrozenSet[DecisionKind] = frozenset({DecisionKind.BUY, DecisionKind.SELL})

# Kinds that never carry prices or size.
FLAT_KINDS: FrozenSet[DecisionKind] = frozenset({DecisionKind.HOLD, DecisionKind.CLOSE})

RESPONSE_FIELDS = ("decision", "sl", "tp", "lot_size", "trail_active", "reason")


@dataclass(frozen=True)
class TradeDecision:
    """Validated decision for one request.

    Instances are never mutated; corrections build a new record with
    ``dataclasses.replace``.

    Attributes:
        kind: One of the six DecisionKind values.
        stop_loss: Stop-loss price; 0.0 for HOLD/CLOSE.
        take_profit: Take-profit price; 0.0 for HOLD/CLOSE.
        lot_size: Position size in lots; 0.0 for HOLD/CLOSE.
        trail_active: Whether the client should trail the stop.
        reason: Short human-readable rationale.
    """

    kind: DecisionKind
    stop_loss: float = 0.0
    take_profit: float = 0.0
    lot_size: float = 0.0
    trail_active: bool = False
    reason: str = ""

    @classmethod
    def hold(cls, reason: str) -> "TradeDecision":
        """Safe fallback: HOLD with no prices, no size and no trailing."""
        return cls(kind=DecisionKind.HOLD, reason=reason)

    def to_response(self) -> Dict[str, Any]:
        """Serialize to the exact response body expected by the client."""
        return {
            "decision": self.kind.value,
            "sl": float(self.stop_loss),
            "tp": float(self.take_profit),
            "lot_size": float(self.lot_size),
            "trail_active": bool(self.trail_active),
            "reason": self.reason,
        }
