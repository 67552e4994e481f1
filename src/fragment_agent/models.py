# models.py
# Data contracts for the durable sandbox agent.
# Schema and validation only.

import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class RunEvent(BaseModel):
    """The job payload that triggers one agent run."""

    value: str = Field(..., description="Free-text instruction for the agent.")
    run_id: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        description="Durability key. Reuse it to resume an interrupted run.",
    )


class ExecutionContext(BaseModel):
    """Mutable state of one run. Owned by the loop, handed to every tool."""

    sandbox_id: str
    updated_files: dict[str, str] = Field(default_factory=dict)
    summary: str | None = None
    summary_achieved: bool = False

    def record_summary(self, summary: str | None) -> bool:
        """Set the summary unless one is already set. Returns True if it was taken."""
        summary = (summary or "").strip()
        if not summary or self.summary:
            return False
        self.summary = summary
        self.summary_achieved = True
        return True


class FileRef(BaseModel):
    path: str = Field(..., description="The path to the file.")


class FileEntry(BaseModel):
    path: str = Field(..., description="The path to the file.")
    content: str = Field(..., description="The content of the file.")


class ToolCall(BaseModel):
    """A structured tool invocation emitted by the model."""

    id: str
    name: str
    arguments: str = Field(default="{}", description="Raw JSON arguments string.")


class ModelTurn(BaseModel):
    """One model response: free text, tool calls, or both."""

    text: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)


class ProbeStatus(str, Enum):
    UP = "up"
    STARTED = "started"
    TIMEOUT = "timeout"
    ERROR = "error"


class ProbeOutcome(BaseModel):
    status: ProbeStatus
    detail: str | None = None


class FragmentResult(BaseModel):
    """Return value of a completed run. Serializes with `sandboxUrl` by alias."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = "Fragment"
    files: dict[str, str] = Field(default_factory=dict)
    summary: str | None = None
    sandbox_url: str = Field(..., alias="sandboxUrl")
