"""Movie catalog service: TMDB import, cached listings and user engagement."""

__version__ = "1.0.0"
