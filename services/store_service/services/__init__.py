"""Store service business logic (no HTTP concerns)."""
