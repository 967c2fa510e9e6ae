"""LLM integration layer for bridge decisions."""
from llm.prompt import build_messages, rules_prompt_for_variant
from llm.parser import parse_reply, StructuredDialect, LineDialect
from llm.client import CompletionClient

__all__ = [
    "build_messages",
    "rules_prompt_for_variant",
    "parse_reply",
    "StructuredDialect",
    "LineDialect",
    "CompletionClient",
]
