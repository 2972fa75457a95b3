"""Generation routes: health, streaming generation, history and re-indexing."""

from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from loguru import logger

from codegen_assistant.application.exceptions import EmptyPromptError, UnsupportedCodeGenTypeError
from codegen_assistant.application.orchestrator import CodeGeneratorFacade
from codegen_assistant.domain.models import CodeGenType
from codegen_assistant.presentation.schemas import (
    DeleteHistoryResponse,
    GenerateRequest,
    HistoryRecordResponse,
    ReindexResponse,
)
from codegen_assistant.rag.indexer import ProjectIndexer
from codegen_assistant.services.chat_history_service import ChatHistoryService

router = APIRouter(tags=["generation"])


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health")
async def health():
    """Simple liveness / readiness check."""
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Generation (Server-Sent Events)
# ---------------------------------------------------------------------------


@router.post("/apps/{project_id}/chat/stream")
async def chat_stream(project_id: str, request: GenerateRequest, raw_request: Request):
    """Generate code for a project and stream the rendered output.

    Server-Sent Events:
    - ``data: {"d": "chunk"}`` for each piece of output
    - ``event: done`` once the stream ends
    - ``event: business-error`` when the request is rejected or fails
    """
    facade: CodeGeneratorFacade = raw_request.app.state.facade

    logger.info(
        "POST /apps/{}/chat/stream | type={} user={} msg={}",
        project_id,
        request.code_gen_type.value,
        request.user_id,
        request.message[:60],
    )

    try:
        stream = await facade.generate(request.message, project_id, request.code_gen_type, request.user_id)
    except (EmptyPromptError, UnsupportedCodeGenTypeError) as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    async def event_generator():
        try:
            async for chunk in stream:
                yield f"data: {json.dumps({'d': chunk}, ensure_ascii=False)}\n\n"
            yield "event: done\ndata: \n\n"
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Stream delivery failed | project={}", project_id)
            yield f"event: business-error\ndata: {json.dumps({'error': str(exc)}, ensure_ascii=False)}\n\n"
        finally:
            stream.close()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@router.get("/apps/{project_id}/history", response_model=list[HistoryRecordResponse])
async def get_history(project_id: str, raw_request: Request, limit: int = Query(default=50, ge=1, le=500)):
    """Latest turn-log records of a project, newest first."""
    hist: ChatHistoryService = raw_request.app.state.history
    records = hist.list_history(project_id, limit)
    return [HistoryRecordResponse.from_record(r) for r in records]


@router.delete("/apps/{project_id}/history", response_model=DeleteHistoryResponse)
async def delete_history(project_id: str, raw_request: Request):
    """Delete the turn log and the code index of a project."""
    hist: ChatHistoryService = raw_request.app.state.history
    indexer: ProjectIndexer = raw_request.app.state.indexer

    deleted_records = hist.delete_by_project(project_id)
    deleted_fragments = await asyncio.to_thread(indexer.delete_project, project_id)
    logger.info("DELETE /apps/{}/history | records={} fragments={}", project_id, deleted_records, deleted_fragments)
    return DeleteHistoryResponse(
        project_id=project_id,
        deleted_records=deleted_records,
        deleted_fragments=deleted_fragments,
    )


# ---------------------------------------------------------------------------
# Re-index
# ---------------------------------------------------------------------------


@router.post("/apps/{project_id}/reindex", response_model=ReindexResponse)
async def reindex(project_id: str, raw_request: Request):
    """Rebuild the code index of a Vue project from the files on disk."""
    indexer: ProjectIndexer = raw_request.app.state.indexer
    settings = raw_request.app.state.settings

    project_dir = settings.code_output_root / CodeGenType.VUE_PROJECT.project_dir_name(project_id)
    if not project_dir.is_dir():
        raise HTTPException(status_code=404, detail="Project directory not found")

    await asyncio.to_thread(indexer.delete_project, project_id)
    count = await asyncio.to_thread(indexer.index_directory, project_id, project_dir)
    logger.info("POST /apps/{}/reindex | fragments={}", project_id, count)
    return ReindexResponse(project_id=project_id, indexed_fragments=count)
