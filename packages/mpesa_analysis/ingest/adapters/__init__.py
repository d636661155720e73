"""SMS export row adapters."""
