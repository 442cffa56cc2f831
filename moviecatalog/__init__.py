"""Installable entry point for the movie catalog service."""

from __future__ import annotations

from app import __version__
from app.main import app, create_app

__all__ = ["__version__", "app", "create_app"]
