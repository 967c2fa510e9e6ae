"""Tests for llm/parser.py module."""
import logging

import pytest

from core.errors import ParseError
from llm.parser import LineDialect, StructuredDialect, parse_reply


class TestStructuredDialect:
    """Tests for the JSON-object reply dialect."""

    def test_extracts_plain_json(self):
        """Should map a bare JSON object onto candidate fields."""
        text = '{"decision": "BUY", "sl": 2935.0, "tp": 2980.0, "lot_size": 0.08, "trail_active": false, "reason": "Bullish"}'
        candidate = StructuredDialect().extract(text)

        assert candidate["decision"] == "BUY"
        assert candidate["sl"] == 2935.0
        assert candidate["tp"] == 2980.0
        assert candidate["lot_size"] == 0.08
        assert candidate["trail_active"] is False
        assert candidate["reason"] == "Bullish"
        assert candidate["dialect"] == "structured"

    def test_tolerates_prose_and_code_fences(self):
        """Should find the object between the first '{' and last '}'."""
        text = 'Here is my call:\n```json\n{"decision": "SELL", "sl": 1, "tp": 2, "lot_size": 3}\n```\nGood luck.'
        candidate = StructuredDialect().extract(text)

        assert candidate["decision"] == "SELL"
        assert candidate["lot_size"] == 3

    def test_accepts_field_aliases(self):
        """Alternate key spellings map to the canonical candidate names."""
        text = '{"action": "hold", "stop_loss": 0, "takeProfit": 0, "lots": 0, "justification": "Flat"}'
        candidate = StructuredDialect().extract(text)

        assert candidate["decision"] == "hold"
        assert candidate["sl"] == 0
        assert candidate["tp"] == 0
        assert candidate["lot_size"] == 0
        assert candidate["reason"] == "Flat"

    def test_missing_braces_raises(self):
        """Text without an object span is a ParseError."""
        with pytest.raises(ParseError, match="no structured object found"):
            StructuredDialect().extract("BUY\nStrong momentum.")

    def test_only_closing_brace_raises(self):
        with pytest.raises(ParseError):
            StructuredDialect().extract("} BUY {")

    def test_undecodable_span_raises(self):
        """A brace pair that is not JSON is a ParseError."""
        with pytest.raises(ParseError, match="could not be decoded"):
            StructuredDialect().extract("BUY because {momentum} is strong")

    def test_trailing_brace_in_prose_falls_back_to_balanced_object(self):
        """A stray '}' after the object should not break decoding."""
        text = '{"decision": "CLOSE", "reason": "Exit"} and then a smiley :-}'
        candidate = StructuredDialect().extract(text)

        assert candidate["decision"] == "CLOSE"
        assert candidate["reason"] == "Exit"

    def test_object_without_decision_raises(self):
        """An object that names no decision does not count as extracted."""
        with pytest.raises(ParseError, match="no decision field"):
            StructuredDialect().extract('{"note": "thinking", "confidence": 0.4}')


class TestLineDialect:
    """Tests for the line-oriented reply dialect."""

    def test_direction_and_reason(self):
        """Second line becomes the reason when no Reason: label exists."""
        candidate = LineDialect().extract("SELL\nPrice rejecting resistance.")

        assert candidate["decision"] == "SELL"
        assert candidate["reason"] == "Price rejecting resistance."
        assert candidate["dialect"] == "line"

    def test_first_match_wins_when_both_tokens_present(self):
        """Leftmost of BUY/SELL on line 1 is used."""
        assert LineDialect().extract("Sell now, do not buy")["decision"] == "SELL"
        assert LineDialect().extract("buy the dip, not a sell")["decision"] == "BUY"

    def test_case_insensitive_direction(self):
        assert LineDialect().extract("  buy  \nMomentum")["decision"] == "BUY"

    def test_exact_kind_token_on_first_line(self):
        """A first line that is exactly one of the six kinds is taken as-is."""
        assert LineDialect().extract("HOLD\nChoppy range.")["decision"] == "HOLD"
        assert LineDialect().extract("close_and_reverse_sell")["decision"] == "CLOSE_AND_REVERSE_SELL"

    def test_defaults_to_buy_with_warning(self, caplog):
        """No direction token defaults to BUY and logs a warning."""
        with caplog.at_level(logging.WARNING):
            candidate = LineDialect().extract("Not sure today\nMixed signals.")

        assert candidate["decision"] == "BUY"
        assert "neither BUY nor SELL" in caplog.text

    def test_labelled_numeric_fields(self):
        """SL, TPn and Lot labels are read case-insensitively."""
        text = "BUY\nsl: 2935.00\nTP2: 2995.5\ntp1: 2980.00\nLot Size: 0.08\nTrail: yes\nReason: Breakout above swing high."
        candidate = LineDialect().extract(text)

        assert candidate["sl"] == 2935.0
        assert candidate["tp"] == 2980.0
        assert candidate["tp_levels"] == [2980.0, 2995.5]
        assert candidate["lot_size"] == 0.08
        assert candidate["trail_active"] == "yes"
        assert candidate["reason"] == "Breakout above swing high."

    def test_take_profit_words_and_unindexed_tp(self):
        candidate = LineDialect().extract("SELL\nStop Loss = 2990\nTake Profit: 2950\nLots: 0.1")

        assert candidate["sl"] == 2990.0
        assert candidate["tp"] == 2950.0
        assert candidate["lot_size"] == 0.1

    def test_reason_label_beats_fallback_line(self):
        text = "BUY\nReason: Higher lows.\nSome trailing commentary"
        assert LineDialect().extract(text)["reason"] == "Higher lows."

    def test_fallback_reason_skips_labels_and_directions(self):
        """The last unlabelled, non-direction line becomes the reason."""
        text = "BUY\nMomentum building.\nSL: 1\nSELL if it breaks 2900"
        assert LineDialect().extract(text)["reason"] == "Momentum building."

    def test_empty_reply_raises(self):
        with pytest.raises(ParseError):
            LineDialect().extract("   \n\n  ")

    def test_no_reason_is_empty_string(self):
        assert LineDialect().extract("BUY")["reason"] == ""

    def test_thousands_separator_is_not_a_decimal(self):
        candidate = LineDialect().extract("BUY\nSL: 2,935.50")
        assert candidate["sl"] == 2935.5


class TestParseReply:
    """Tests for dialect precedence in parse_reply."""

    def test_structured_wins_when_both_present(self):
        """Text with an object span and line tokens uses the structured dialect."""
        text = 'SELL\nReason: ignore this\n{"decision": "BUY", "sl": 1, "tp": 2, "lot_size": 3}'
        candidate = parse_reply(text)

        assert candidate["dialect"] == "structured"
        assert candidate["decision"] == "BUY"

    def test_line_used_without_object_span(self):
        candidate = parse_reply("SELL\nPrice rejecting resistance.")

        assert candidate["dialect"] == "line"
        assert candidate["decision"] == "SELL"

    def test_line_used_when_braces_do_not_decode(self):
        candidate = parse_reply("BUY {strong} trend\nReason: Trend day.")

        assert candidate["dialect"] == "line"
        assert candidate["reason"] == "Trend day."

    def test_raises_when_nothing_extracts(self):
        with pytest.raises(ParseError):
            parse_reply("")

    def test_custom_dialect_order(self):
        """Dialect order is explicit and can be overridden."""
        text = 'SELL\n{"decision": "BUY"}'
        candidate = parse_reply(text, dialects=(LineDialect(), StructuredDialect()))

        assert candidate["dialect"] == "line"
        assert candidate["decision"] == "SELL"
