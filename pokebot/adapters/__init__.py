"""Chat platform adapters for the session engine."""
