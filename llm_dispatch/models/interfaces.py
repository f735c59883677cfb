"""Abstract interface every completion adapter implements."""

from abc import ABC, abstractmethod
from typing import AsyncIterator

from .requests import CompletionRequest
from .responses import CompletionResponse, StreamChunk, TokenUsage


class ICompletionAdapter(ABC):
    """Capability set of one provider/model pairing.

    The dispatch layer treats every adapter uniformly through these five
    operations; vendor translation stays inside the concrete class.
    """

    @property
    @abstractmethod
    def id(self) -> str:
        """Get the logical id of this adapter."""
        pass

    @property
    @abstractmethod
    def provider(self) -> str:
        """Get the provider this adapter talks to."""
        pass

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Generate a single completion."""
        pass

    @abstractmethod
    def stream(self, request: CompletionRequest) -> AsyncIterator[StreamChunk]:
        """Stream a completion as canonical chunks.

        Implementations are async generators. Failures are reported as a
        single ``error`` chunk rather than raised.
        """
        pass

    @abstractmethod
    def count_tokens(self, text: str) -> int:
        """Estimate the number of tokens in ``text``."""
        pass

    @abstractmethod
    def estimate_cost(self, usage: TokenUsage) -> float:
        """Estimate the USD cost of ``usage``."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Probe the upstream. Returns False rather than raising when unhealthy."""
        pass
