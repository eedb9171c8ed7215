"""Scene Engine - versioned scene generation and job orchestration."""

__version__ = "0.1.0"
