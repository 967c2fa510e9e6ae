"""Decision schema, validation and request handling for the bridge."""
from core.decision import DecisionKind, TradeDecision
from core.errors import BridgeError

__all__ = [
    "DecisionKind",
    "TradeDecision",
    "BridgeError",
]
