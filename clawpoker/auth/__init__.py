"""Agent authentication."""
