"""Streaming relay core: framing, chat and pull relays."""

from ollama_chat_relay.relay.chat import ChatRelay
from ollama_chat_relay.relay.framing import LineDecoder, SSEDecoder, encode_sse
from ollama_chat_relay.relay.pull import PullRelay
from ollama_chat_relay.relay.state import RelayState

__all__ = ["ChatRelay", "LineDecoder", "PullRelay", "RelayState", "SSEDecoder", "encode_sse"]
