"""FastAPI application layer for the Voice Matrix API."""
