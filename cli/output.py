"""
Output formatting utilities for CLI.

Renders decision bodies and configuration dumps for the terminal.
"""
from __future__ import annotations

import json
import sys
from typing import Any, Dict

from colorama import Fore, Style

DECISION_COLORS = {
    "BUY": Fore.GREEN,
    "SELL": Fore.RED,
    "CLOSE": Fore.YELLOW,
    "CLOSE_AND_REVERSE_BUY": Fore.GREEN,
    "CLOSE_AND_REVERSE_SELL": Fore.RED,
    "HOLD": Fore.CYAN,
}


def format_decision(body: Dict[str, Any], color: bool = True) -> str:
    """Render a decision body as a headline plus its JSON.

    Args:
        body: Response body produced by the handler.
        color: Whether to wrap the headline in ANSI colors.

    Returns:
        Multi-line text ready for printing.
    """
    decision = str(body.get("decision", "?"))
    reason = body.get("reason") or ""
    headline = f"{decision} | {reason}" if reason else decision
    if color:
        headline = f"{DECISION_COLORS.get(decision, '')}{Style.BRIGHT}{headline}{Style.RESET_ALL}"
    return f"{headline}\n{json.dumps(body, indent=2)}"


def format_settings(settings: Dict[str, Any]) -> str:
    width = max((len(key) for key in settings), default=0)
    return "\n".join(f"{key.ljust(width)} : {value}" for key, value in settings.items())


def print_result(message: str, success: bool = True) -> None:
    """Print command result to terminal.

    Args:
        message: Text to print.
        success: Exit with status 1 after printing when False.
    """
    print(message)

    if not success:
        sys.exit(1)

