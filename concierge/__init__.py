"""Concierge: tiered intent matching and routing for AI voice agents."""

__version__ = "0.1.0"
