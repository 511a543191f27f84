"""Agent-facing protocols."""
