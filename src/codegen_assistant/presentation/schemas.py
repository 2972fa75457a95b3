"""HTTP request/response schemas (Pydantic models) for the REST API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from codegen_assistant.domain.models import ChatHistoryRecord, CodeGenType

# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


class GenerateRequest(BaseModel):
    """Request body for POST /apps/{project_id}/chat/stream."""

    message: str = Field(description="The user's prompt")
    code_gen_type: CodeGenType = Field(
        default=CodeGenType.VUE_PROJECT,
        description="Pipeline to run: html, multi_file or vue_project",
    )
    user_id: str | None = Field(default=None, description="Caller identity, stored with the turn")


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class ToolCallResponse(BaseModel):
    id: str
    name: str
    arguments: str
    executed: bool = True


class HistoryRecordResponse(BaseModel):
    """A single turn-log record."""

    id: int
    project_id: str
    message: str
    message_type: str
    user_id: str | None = None
    tool_calls: list[ToolCallResponse] = Field(default_factory=list)
    created_at: str

    @classmethod
    def from_record(cls, record: ChatHistoryRecord) -> HistoryRecordResponse:
        return cls(
            id=record.id,
            project_id=record.project_id,
            message=record.message,
            message_type=record.message_type,
            user_id=record.user_id,
            tool_calls=[ToolCallResponse(**c.to_dict()) for c in record.tool_calls or []],
            created_at=record.created_at,
        )


class DeleteHistoryResponse(BaseModel):
    project_id: str
    deleted_records: int
    deleted_fragments: int


class ReindexResponse(BaseModel):
    project_id: str
    indexed_fragments: int
