"""
Table router - /api/tables/*
Guest sessions, merges, manual table status and status history.
Thin router delegating to TableSessionService.
"""

from fastapi import APIRouter, Depends, Query, status

from pos_shared.security.auth import Actor, current_actor
from pos_shared.utils.schemas import (
    MergeTablesRequest,
    SessionOutput,
    StartSessionRequest,
    TableDetailOutput,
    TableHistoryOutput,
    TableMergeOutput,
    TableOutput,
    TableStatusRequest,
    UnmergeTablesRequest,
)
from pos_api.core.dependencies import get_session_service
from pos_api.services.domain import TableSessionService

router = APIRouter(prefix="/api/tables", tags=["tables"])


@router.get("", response_model=list[TableOutput])
def list_tables(
    floor_id: int | None = None,
    actor: Actor = Depends(current_actor),
    service: TableSessionService = Depends(get_session_service),
) -> list[TableOutput]:
    return [TableOutput.model_validate(t) for t in service.list_tables(actor, floor_id)]


@router.get("/{table_id}", response_model=TableDetailOutput)
def get_table(
    table_id: int,
    actor: Actor = Depends(current_actor),
    service: TableSessionService = Depends(get_session_service),
) -> TableDetailOutput:
    """Table with its active session and open merges."""
    table = service.get_table(table_id, actor)
    session = service.get_active_session(table.id)
    merges = [m for m in service.list_merges(table.id, actor) if m.unmerged_at is None]
    return TableDetailOutput(
        table=TableOutput.model_validate(table),
        session=SessionOutput.model_validate(session) if session else None,
        merges=[TableMergeOutput.model_validate(m) for m in merges],
    )


@router.post("/{table_id}/session", response_model=SessionOutput, status_code=status.HTTP_201_CREATED)
def start_session(
    table_id: int,
    body: StartSessionRequest,
    actor: Actor = Depends(current_actor),
    service: TableSessionService = Depends(get_session_service),
) -> SessionOutput:
    session = service.start_session(
        table_id,
        actor,
        guest_count=body.guest_count,
        guest_name=body.guest_name,
        guest_phone=body.guest_phone,
    )
    return SessionOutput.model_validate(session)


@router.delete("/{table_id}/session", response_model=SessionOutput)
def end_session(
    table_id: int,
    actor: Actor = Depends(current_actor),
    service: TableSessionService = Depends(get_session_service),
) -> SessionOutput:
    return SessionOutput.model_validate(service.end_session(table_id, actor))


@router.post("/{table_id}/merge", response_model=list[TableMergeOutput], status_code=status.HTTP_201_CREATED)
def merge_tables(
    table_id: int,
    body: MergeTablesRequest,
    actor: Actor = Depends(current_actor),
    service: TableSessionService = Depends(get_session_service),
) -> list[TableMergeOutput]:
    merges = service.merge_tables(table_id, body.table_ids, actor)
    return [TableMergeOutput.model_validate(m) for m in merges]


@router.post("/{table_id}/unmerge", response_model=list[TableMergeOutput])
def unmerge_tables(
    table_id: int,
    body: UnmergeTablesRequest | None = None,
    actor: Actor = Depends(current_actor),
    service: TableSessionService = Depends(get_session_service),
) -> list[TableMergeOutput]:
    merged_ids = body.merged_table_ids if body else None
    merges = service.unmerge_tables(table_id, actor, merged_table_ids=merged_ids)
    return [TableMergeOutput.model_validate(m) for m in merges]


@router.get("/{table_id}/merges", response_model=list[TableMergeOutput])
def list_merges(
    table_id: int,
    actor: Actor = Depends(current_actor),
    service: TableSessionService = Depends(get_session_service),
) -> list[TableMergeOutput]:
    return [TableMergeOutput.model_validate(m) for m in service.list_merges(table_id, actor)]


@router.patch("/{table_id}/status", response_model=TableOutput)
def set_table_status(
    table_id: int,
    body: TableStatusRequest,
    actor: Actor = Depends(current_actor),
    service: TableSessionService = Depends(get_session_service),
) -> TableOutput:
    """Reserve, block, clean or free an idle table. Managers only."""
    return TableOutput.model_validate(service.set_table_status(table_id, body.status, actor))


@router.get("/{table_id}/history", response_model=list[TableHistoryOutput])
def get_history(
    table_id: int,
    limit: int = Query(default=50, ge=1, le=200),
    actor: Actor = Depends(current_actor),
    service: TableSessionService = Depends(get_session_service),
) -> list[TableHistoryOutput]:
    """Status changes of a table, newest first."""
    return [TableHistoryOutput.model_validate(h) for h in service.get_history(table_id, actor, limit=limit)]
