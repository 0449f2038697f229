"""Flow editor core services."""
