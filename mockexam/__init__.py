"""Practice exam attempts: scoring, completion and per-exam statistics."""
__version__ = "1.0.0"
