"""Application services built on storage, the voice provider and usage limits."""
