"""Outbound calls to the model-serving backend."""

from ollama_chat_relay.gateway.backend import OllamaBackend

__all__ = ["OllamaBackend"]
