"""planchat - planning chat sessions with an AI orchestration backend."""

__version__ = "0.1.0"
