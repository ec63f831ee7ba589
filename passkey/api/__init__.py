"""Passkey API - HTTP adapter over the ceremony engine."""

from passkey.api.routes import setup_error_handlers, setup_routes

__all__ = ["setup_error_handlers", "setup_routes"]
