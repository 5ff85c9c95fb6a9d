"""CivicWatch civic-issue escalation backend."""

__version__ = "1.0.0"
