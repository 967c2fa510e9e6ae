"""
Candidate normalization.

Turns the untyped field bag produced by the reply parser into a
TradeDecision. This is the only place allowed to override the model's
stated intent, and it may only move a decision toward HOLD/CLOSE.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Mapping

from core.decision import (
    DECISION_TOKENS,
    FLAT_KINDS,
    ORDER_KINDS,
    DecisionKind,
    TradeDecision,
)
from core.errors import InvalidDecisionKind

MAX_REASON_LENGTH = 500

_TRUE_STRINGS = {"1", "true", "yes", "on", "y", "t"}


def coerce_number(value: Any) -> float:
    """Convert a candidate value to float; anything unusable becomes 0.0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def coerce_bool(value: Any) -> bool:
    """Map truthy textual or numeric values to True."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def coerce_kind(value: Any) -> DecisionKind:
    token = str(value if value is not None else "").strip().upper()
    if token not in DECISION_TOKENS:
        raise InvalidDecisionKind(
            "Decision is not one of the allowed kinds",
            context={"decision": token[:40] or "<missing>"},
        )
    return DecisionKind(token)


def normalize(candidate: Mapping[str, Any]) -> TradeDecision:
    """Validate a parsed candidate and build the decision record.

    Args:
        candidate: Field bag with keys ``decision``, ``sl``, ``tp``,
            ``lot_size``, ``trail_active`` and ``reason``; missing keys are
            treated as empty.

    Returns:
        A TradeDecision that satisfies the zero/non-zero invariant.

    Raises:
        InvalidDecisionKind: ``decision`` is outside the closed set.
    """
    kind = coerce_kind(candidate.get("decision"))
    stop_loss = coerce_number(candidate.get("sl"))
    take_profit = coerce_number(candidate.get("tp"))
    lot_size = coerce_number(candidate.get("lot_size"))
    trail_active = coerce_bool(candidate.get("trail_active"))
    reason = str(candidate.get("reason") or "").strip()[:MAX_REASON_LENGTH]

    if kind in ORDER_KINDS and 0.0 in (stop_loss, take_profit, lot_size):
        logging.warning(
            "Downgrading %s to HOLD: incomplete risk envelope (sl=%s, tp=%s, lot_size=%s)",
            kind.value,
            stop_loss,
            take_profit,
            lot_size,
        )
        note = f"Downgraded {kind.value} to HOLD: missing sl/tp/lot_size"
        reason = f"{note}. {reason}" if reason else note
        return TradeDecision(
            kind=DecisionKind.HOLD,
            trail_active=trail_active,
            reason=reason[:MAX_REASON_LENGTH],
        )

    if kind in FLAT_KINDS:
        stop_loss = take_profit = lot_size = 0.0

    return TradeDecision(
        kind=kind,
        stop_loss=stop_loss,
        take_profit=take_profit,
        lot_size=lot_size,
        trail_active=trail_active,
        reason=reason,
    )


def candidate_summary(candidate: Dict[str, Any]) -> str:
    """One-line description of a candidate for debug logs."""
    return ", ".join(f"{key}={candidate.get(key)!r}" for key in ("decision", "sl", "tp", "lot_size"))
