"""Voice Matrix: phone assistant backend with per-account usage limits."""

__version__ = "1.0.0"
