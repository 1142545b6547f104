"""
Model provider interface.

Assembly never branches on which backend answers a request. Everything it
needs to size a prompt comes from ProviderCapabilities; everything else
(vendor marshaling, credentials, transport) lives behind this protocol.
"""

from typing import Iterator, Protocol, runtime_checkable

from shared.schemas import ChatRequest, ChatResponse, ProviderCapabilities, StreamChunk


@runtime_checkable
class Provider(Protocol):
    """A chat model backend (OpenAI, Gemini, a local server, ...)."""

    def chat(self, request: ChatRequest) -> ChatResponse:
        """Send a request and wait for the complete response."""
        ...

    def stream(self, request: ChatRequest) -> Iterator[StreamChunk]:
        """Send a request and yield response increments as they arrive."""
        ...

    def capabilities(self) -> ProviderCapabilities:
        ...

    def close(self) -> None:
        ...
