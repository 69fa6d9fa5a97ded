"""Descriptions of how the test client reaches a deployed instance."""
from dataclasses import dataclass, field
from typing import Optional, Tuple

CE_SERVLET_PROTOCOL = "ce-servlet"


@dataclass(frozen=True)
class ProtocolDescription:
    name: str


@dataclass(frozen=True)
class HTTPContext:
    name: str
    host: str
    port: int
    context_root: str = "/"

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}{self.context_root}"


@dataclass(frozen=True)
class ProtocolMetaData:
    protocol: ProtocolDescription
    contexts: Tuple[HTTPContext, ...] = field(default_factory=tuple)

    def get_context(self, name: Optional[str] = None) -> Optional[HTTPContext]:
        for context in self.contexts:
            if name is None or context.name == name:
                return context
        return None
