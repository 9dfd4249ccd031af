"""Streaming relay between chat clients and an Ollama backend."""

__version__ = "0.1.0"
