"""Windsurf: Centinela audit logging and CSRF-protected forms on FastAPI."""

__version__ = "1.0.0"
