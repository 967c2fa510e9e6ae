"""LLM reply parsing.

This module turns the completion provider's free-form reply into an
untyped candidate decision. Two reply dialects are supported, each as an
explicit strategy:

- structured: a JSON object somewhere in the text (prose and code fences
  around it are tolerated);
- line: a plain-text layout whose first line carries the direction and
  whose later lines carry labelled numbers and a reason.

``parse_reply`` probes the strategies in a fixed order and returns the
first candidate that extracts.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from core.decision import DECISION_TOKENS
from core.errors import ParseError
from utils.text import strip_code_fences, truncate

Candidate = Dict[str, Any]

# Structured-reply key aliases mapped onto candidate field names.
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "decision": ("decision", "action", "signal", "kind"),
    "sl": ("sl", "stop_loss", "stopLoss", "stoploss"),
    "tp": ("tp", "take_profit", "takeProfit", "takeprofit"),
    "lot_size": ("lot_size", "lotSize", "lot", "lots"),
    "trail_active": ("trail_active", "trailActive", "trail"),
    "reason": ("reason", "justification", "rationale"),
}

_DIRECTION_PREFIX_RE = re.compile(
    r"^(?:CLOSE_AND_REVERSE_BUY|CLOSE_AND_REVERSE_SELL|BUY|SELL|CLOSE|HOLD)\b",
    re.IGNORECASE,
)
_LABEL_RE = re.compile(
    r"^(?P<label>stop[\s_-]*loss|sl|take[\s_-]*profit[\s_-]*(?P<tp_word_idx>\d+)?|tp[\s_-]*(?P<tp_idx>\d+)?"
    r"|lot[\s_-]*size|lots?|trail(?:ing)?(?:[\s_-]*active)?)\s*[:=]\s*(?P<value>.*)$",
    re.IGNORECASE,
)
_REASON_RE = re.compile(r"^reason\s*[:=]\s*(?P<value>.*)$", re.IGNORECASE)
_NUMBER_RE = re.compile(r"[-+]?\d[\d,]*(?:\.\d+)?")


class ReplyDialect(Protocol):
    """A strategy that extracts a candidate from one reply layout."""

    name: str

    def extract(self, text: str) -> Candidate:
        """Return a candidate or raise ParseError when the layout does not match."""
        ...


def _first_balanced_object(text: str, start: int) -> Optional[str]:
    """Return the first brace-balanced ``{...}`` block beginning at ``start``.

    String literals are skipped so braces inside quoted reasons do not
    affect the depth count.
    """
    depth = 0
    in_string = False
    escaped = False

    for idx in range(start, len(text)):
        char = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    return None


class StructuredDialect:
    """Extract a JSON object spanning the first ``{`` to the last ``}``."""

    name = "structured"

    def extract(self, text: str) -> Candidate:
        content = strip_code_fences(text or "")
        start = content.find("{")
        end = content.rfind("}")
        if start == -1 or end <= start:
            raise ParseError("no structured object found")

        record = self._decode(content, start, end)
        candidate = self._map_fields(record)
        if "decision" not in candidate:
            raise ParseError(
                "structured object has no decision field",
                context={"keys": ", ".join(sorted(record))[:80]},
            )
        return candidate

    @staticmethod
    def _decode(content: str, start: int, end: int) -> Any:
        json_str = content[start : end + 1]
        try:
            return json.loads(json_str)
        except json.JSONDecodeError as decode_err:
            # Prose after the object may itself contain a closing brace.
            block = _first_balanced_object(content, start)
            if block and block != json_str:
                try:
                    return json.loads(block)
                except json.JSONDecodeError:
                    pass
            raise ParseError(
                "structured object could not be decoded",
                context={"error": str(decode_err), "excerpt": truncate(json_str, 80)},
            ) from decode_err

    @staticmethod
    def _map_fields(record: Dict[str, Any]) -> Candidate:
        candidate: Candidate = {"dialect": "structured"}
        for field, aliases in FIELD_ALIASES.items():
            for alias in aliases:
                if alias in record:
                    candidate[field] = record[alias]
                    break
        return candidate


class LineDialect:
    """Extract a decision from a line-oriented plain-text reply."""

    name = "line"

    def extract(self, text: str) -> Candidate:
        lines = [line.strip() for line in (text or "").splitlines() if line.strip()]
        if not lines:
            raise ParseError("reply is empty")

        candidate: Candidate = {"dialect": "line", "decision": self._direction(lines[0])}

        tp_levels: List[Tuple[int, float]] = []
        reason: Optional[str] = None
        fallback_reason: Optional[str] = None

        for line in lines[1:]:
            reason_match = _REASON_RE.match(line)
            if reason_match:
                if reason is None:
                    reason = reason_match.group("value").strip()
                continue

            label_match = _LABEL_RE.match(line)
            if label_match:
                self._apply_label(label_match, candidate, tp_levels)
                continue

            if not _DIRECTION_PREFIX_RE.match(line):
                fallback_reason = line

        if tp_levels:
            tp_levels.sort(key=lambda item: item[0])
            candidate["tp"] = tp_levels[0][1]
            candidate["tp_levels"] = [value for _, value in tp_levels]

        candidate["reason"] = reason if reason is not None else (fallback_reason or "")
        return candidate

    @staticmethod
    def _direction(first_line: str) -> str:
        upper = first_line.upper()
        token = upper.strip(" \t.:!*#`\"'")
        if token in DECISION_TOKENS:
            return token

        buy_idx = upper.find("BUY")
        sell_idx = upper.find("SELL")
        if buy_idx != -1 and (sell_idx == -1 or buy_idx < sell_idx):
            return "BUY"
        if sell_idx != -1:
            return "SELL"

        logging.warning(
            "Reply first line has neither BUY nor SELL; defaulting to BUY (raw: %s)",
            truncate(first_line, 80),
        )
        return "BUY"

    @staticmethod
    def _apply_label(
        match: "re.Match[str]",
        candidate: Candidate,
        tp_levels: List[Tuple[int, float]],
    ) -> None:
        label = re.sub(r"[\s_-]+", "", match.group("label").lower())
        value = match.group("value").strip()

        if label.startswith("trail"):
            candidate["trail_active"] = value
            return

        number_match = _NUMBER_RE.search(value)
        if not number_match:
            return
        number = float(number_match.group(0).replace(",", ""))

        if label in ("sl", "stoploss"):
            candidate["sl"] = number
        elif label.startswith("lot"):
            candidate["lot_size"] = number
        else:
            index = match.group("tp_idx") or match.group("tp_word_idx")
            tp_levels.append((int(index) if index else 0, number))


STRUCTURED = StructuredDialect()
LINE = LineDialect()

DEFAULT_DIALECTS: Tuple[ReplyDialect, ...] = (STRUCTURED, LINE)


def parse_reply(text: str, dialects: Sequence[ReplyDialect] = DEFAULT_DIALECTS) -> Candidate:
    """Extract a candidate decision from a model reply.

    Args:
        text: Raw completion text.
        dialects: Strategies to probe, in precedence order.

    Returns:
        The candidate from the first dialect that extracts.

    Raises:
        ParseError: No dialect could extract a candidate.
    """
    last_error: Optional[ParseError] = None
    for dialect in dialects:
        try:
            candidate = dialect.extract(text)
        except ParseError as exc:
            logging.debug("Reply dialect %s did not extract: %s", dialect.name, exc)
            last_error = exc
            continue
        logging.debug("Reply parsed with %s dialect", dialect.name)
        return candidate

    raise last_error or ParseError("no reply dialects configured")
