"""pyhorse: agentic search over a local directory with read-only tools."""

__version__ = "0.3.0"
