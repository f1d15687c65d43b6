"""Pydantic models for OpenCode storage, exports and ccusage output."""

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field


class SessionTime(BaseModel):
    """Creation/update instants (epoch milliseconds)."""

    created: int
    updated: int


class StoredSessionInfo(BaseModel):
    """Session metadata file under storage/session/<project>/<id>.json."""

    id: str
    projectID: str
    directory: str
    title: str = ""
    time: SessionTime

    model_config = {"extra": "allow"}


class CacheTokens(BaseModel):
    read: int
    write: int


class TokenInfo(BaseModel):
    """Token counts reported for a single message."""

    input: int
    output: int
    reasoning: int
    cache: CacheTokens

    def has_activity(self) -> bool:
        """True when any billable counter is non-zero."""
        return (
            self.input > 0
            or self.output > 0
            or self.reasoning > 0
            or self.cache.read > 0
            or self.cache.write > 0
        )


class MessageTime(BaseModel):
    created: int | None = None
    completed: int | None = None


class MessagePath(BaseModel):
    cwd: str
    root: str | None = None


class MessageInfo(BaseModel):
    """Metadata of a single exported message."""

    id: str
    sessionID: str
    role: Literal["user", "assistant"]
    time: MessageTime
    modelID: str | None = None
    providerID: str | None = None
    cost: float | None = None
    tokens: TokenInfo | None = None
    path: MessagePath | None = None

    model_config = {"extra": "allow"}


class ExportedMessage(BaseModel):
    """Message entry of `opencode export` output."""

    info: MessageInfo
    parts: list[Any] = Field(default_factory=list)

    model_config = {"extra": "allow"}


class SessionInfo(BaseModel):
    """Session header of `opencode export` output."""

    id: str
    projectID: str | None = None
    directory: str | None = None
    title: str | None = None

    model_config = {"extra": "allow"}


class SessionExport(BaseModel):
    """Full session document printed by `opencode export <id>`."""

    info: SessionInfo
    messages: list[ExportedMessage]

    model_config = {"extra": "allow"}


class SessionListItem(BaseModel):
    """Session discovered in OpenCode storage."""

    id: str
    title: str = ""
    created: int
    updated: int
    project_id: str
    directory: str

    model_config = {"frozen": True}

    @classmethod
    def from_stored(cls, stored: StoredSessionInfo) -> "SessionListItem":
        return cls(
            id=stored.id,
            title=stored.title,
            created=stored.time.created,
            updated=stored.time.updated,
            project_id=stored.projectID,
            directory=stored.directory,
        )


class Usage(BaseModel):
    input_tokens: int
    output_tokens: int
    cache_read_input_tokens: int | None = None
    cache_creation_input_tokens: int | None = None


class OutputMessage(BaseModel):
    id: str
    model: str
    usage: Usage


class OutputLine(BaseModel):
    """A single ccusage-compatible JSONL record."""

    timestamp: str
    sessionId: str
    cwd: str | None = None
    requestId: str
    message: OutputMessage

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize with unset optional fields omitted."""
        return self.model_dump(exclude_none=True)


@dataclass
class ExportStats:
    """Run-level counters produced by the export pipeline."""

    sessions_discovered: int = 0
    sessions_exported: int = 0
    sessions_skipped: int = 0
    messages_converted: int = 0
    messages_skipped: int = 0
    errors: list[str] = field(default_factory=list)
    aborted: bool = False
