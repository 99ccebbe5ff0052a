"""Domain models and error taxonomy for the monitoring core."""
