"""Provider interface — search(query) → raw provider payloads or ProviderError."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from tripmerge.schemas.common import ServiceType
from tripmerge.schemas.query import SearchQuery


class ProviderError(RuntimeError):
    """A provider call failed: non-success response, malformed payload or timeout."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class ProviderTimeoutError(ProviderError):
    """A provider lost its timeout race and was cancelled."""


class OfferProvider(ABC):
    """One external inventory source for a single service type."""

    is_synthetic: bool = False

    def __init__(self, name: str, service_type: ServiceType, timeout_seconds: float = 10.0):
        self.name = name
        self.service_type = service_type
        self.timeout_seconds = timeout_seconds

    @abstractmethod
    async def search(self, query: SearchQuery) -> list[dict[str, Any]]:
        """Return provider-shaped offer dicts, or raise ProviderError."""
        ...

    async def close(self):
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, service={self.service_type.value})"


@dataclass
class ProviderResult:
    """A provider's raw answer to one adapter invocation."""
    provider: str
    payload: list[dict[str, Any]] = field(default_factory=list)
    fallback: bool = False
    elapsed_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "provider": self.provider,
            "payload": self.payload,
            "fallback": self.fallback,
            "elapsed_ms": self.elapsed_ms,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProviderResult":
        return cls(
            provider=data["provider"],
            payload=data.get("payload", []),
            fallback=data.get("fallback", False),
            elapsed_ms=data.get("elapsed_ms", 0),
        )
