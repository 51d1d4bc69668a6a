"""ASGI application factory and dependencies for the SipCoin server."""

from sipcoin.server.app import app, create_app

__all__ = ["app", "create_app"]
