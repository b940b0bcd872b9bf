"""turnwatch CLI commands."""
