"""turnwatch: know when a Codex conversation is waiting on you."""

__version__ = "0.3.0"
