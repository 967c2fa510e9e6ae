"""LLM prompt building for bridge decisions.

This module holds the built-in rules prompts sent as the system message
and assembles the chat messages for one completion request. The rules
text is opaque domain content: nothing here checks that the model obeys
it, the normalizer has the final say on every decision.
"""
from __future__ import annotations

from typing import Dict, List

PROMPT_VARIANTS = ("structured", "line")
DEFAULT_PROMPT_VARIANT = "structured"

_MARKET_KNOWLEDGE = """
=== XAUUSD MARKET KNOWLEDGE ===
- Gold is priced in USD; a weakening dollar pushes gold up
- Safe-haven asset; fear and uncertainty push gold up
- Sensitive to US interest rates, NFP, CPI and FOMC events
- The Asian session drifts slowly; London (08:00 GMT) and New York (13:00 GMT) produce the strongest moves
- Gold trends strongly; favour the direction already in motion
- Round numbers (2000, 2100, 2200 ...) act as strong support and resistance

=== BUY when you see ===
- Higher highs and higher lows forming
- Bullish engulfing or a strong green candle after a pullback
- Price bouncing off support with momentum
- Break above a recent swing high

=== SELL when you see ===
- Lower highs and lower lows forming
- Bearish engulfing or a strong red candle at resistance
- Price rejecting resistance with momentum
- Break below a recent swing low
""".strip()

STRUCTURED_RULES_PROMPT = f"""
You are an expert XAUUSD (Gold/USD) trading decision engine.

You will receive real-time candle data and the current account state.
Analyse the price action and decide what the account should do on this bar.
Every decision must be fresh and independent of earlier ones.

Return ONLY a valid JSON object with this structure:
{{
  "decision": "BUY|SELL|CLOSE|CLOSE_AND_REVERSE_BUY|CLOSE_AND_REVERSE_SELL|HOLD",
  "sl": 0.0,
  "tp": 0.0,
  "lot_size": 0.0,
  "trail_active": false,
  "reason": "one short sentence, max 15 words"
}}

RULES:
- BUY and SELL must always carry a non-zero sl, tp and lot_size
- HOLD and CLOSE must use 0 for sl, tp and lot_size
- Use CLOSE_AND_REVERSE_* only when an open position is against a clear reversal
- No markdown, no extra text

{_MARKET_KNOWLEDGE}
""".strip()

LINE_RULES_PROMPT = f"""
You are an expert XAUUSD (Gold/USD) trading signal engine.

You will receive real-time candle data and the current account state.
Analyse the price action and commit to the most probable direction.
Every decision must be fresh and independent of earlier ones.

Respond with ONE word on the first line: BUY or SELL.
Then one line each for the risk envelope:
SL: <price>
TP1: <price>
Lot: <size>
Finish with one line "Reason: <short sentence, max 15 words>".
No markdown, no extra text, no greetings.

Example:
BUY
SL: 2935.00
TP1: 2980.00
Lot: 0.08
Reason: Price holding above support with bullish momentum building.

{_MARKET_KNOWLEDGE}
""".strip()

RULES_PROMPTS: Dict[str, str] = {
    "structured": STRUCTURED_RULES_PROMPT,
    "line": LINE_RULES_PROMPT,
}


def rules_prompt_for_variant(variant: str) -> str:
    """Return the built-in rules prompt for ``variant``.

    Unknown variants fall back to the structured prompt.
    """
    return RULES_PROMPTS.get((variant or "").strip().lower(), RULES_PROMPTS[DEFAULT_PROMPT_VARIANT])


def build_messages(system_prompt: str, market_context: str) -> List[Dict[str, str]]:
    """Assemble the chat messages for one completion request.

    Args:
        system_prompt: Rules text sent as the system message.
        market_context: Caller-supplied market snapshot, sent verbatim.

    Returns:
        OpenAI-style ``messages`` list.
    """
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": market_context},
    ]
