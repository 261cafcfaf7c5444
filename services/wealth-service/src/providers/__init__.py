"""Analysis provider implementations that talk to external services."""
