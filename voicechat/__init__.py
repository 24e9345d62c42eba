"""Voice-enabled multi-session chat client for a remote text-generation service."""

__version__ = "0.1.0"
