"""Client-side consumer of the relay API."""

from ollama_chat_relay.client.client import RelayClient
from ollama_chat_relay.client.display import describe_model, next_selected_model

__all__ = ["RelayClient", "describe_model", "next_selected_model"]
