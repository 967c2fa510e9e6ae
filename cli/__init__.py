"""Command-line interface for the decision bridge."""
