"""Server configuration and tool models."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# Per-request timeout when a server does not set timeoutMs
DEFAULT_TIMEOUT_MS = 60_000

TransportType = Literal["stdio", "http"]


class ServerConfig(BaseModel):
    """How to reach one named server.

    Field names follow Python conventions; the camelCase names used in
    config files (``timeoutMs``) are accepted as well.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    transport: TransportType
    summary: Optional[str] = None
    timeout_ms: Optional[int] = Field(None, alias="timeoutMs", gt=0)

    # stdio
    command: Optional[str] = None
    args: list[str] = Field(default_factory=list)
    cwd: Optional[str] = None
    env: dict[str, str] = Field(default_factory=dict)

    # http
    url: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)

    @property
    def timeout_seconds(self) -> float:
        return (self.timeout_ms or DEFAULT_TIMEOUT_MS) / 1000.0


class ToolDefinition(BaseModel):
    """A tool as advertised by ``tools/list``. Unknown fields are preserved."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    name: str
    description: Optional[str] = None
    input_schema: Optional[dict[str, Any]] = Field(None, alias="inputSchema")


class ListToolsResult(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    tools: list[ToolDefinition] = Field(default_factory=list)
