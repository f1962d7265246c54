"""Example U2F relying party exposing the Flask app factory."""

from .app import create_app

__all__ = ["create_app"]
