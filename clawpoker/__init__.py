"""ClawPoker: no-limit Hold'em tables for autonomous agents."""

__version__ = "0.1.0"
