"""Ticket export endpoints."""

from fastapi import APIRouter, Body, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.observability import trace_function
from app.schemas.exports import ExportJobListResponse, ExportJobResponse, ExportRequest
from app.services.export_queue import ExportQueue, get_export_queue
from app.services.exports import ConversationExportService

router = APIRouter()


@router.post("/{ticket_id}/export", response_model=ExportJobResponse, status_code=202)
@trace_function("tickets_endpoint.request_export")
async def request_export(
    ticket_id: str,
    request: ExportRequest | None = Body(None),
    user_id: str | None = Header(None, alias="X-User-Id"),
    db: AsyncSession = Depends(get_db),
    queue: ExportQueue = Depends(get_export_queue),
) -> ExportJobResponse:
    """Queue a conversation export for a ticket."""
    service = ConversationExportService(db, queue)
    job = await service.request_export(
        ticket_id,
        raw_format=request.format if request else None,
        requested_by=user_id,
    )
    return ExportJobResponse.from_job(job, settings.API_V1_STR)


@router.get("/{ticket_id}/export/jobs", response_model=ExportJobListResponse)
@trace_function("tickets_endpoint.list_exports")
async def list_exports(
    ticket_id: str,
    db: AsyncSession = Depends(get_db),
) -> ExportJobListResponse:
    """List the most recent export jobs for a ticket."""
    jobs = await ConversationExportService(db).list_jobs(ticket_id)
    return ExportJobListResponse(
        items=[ExportJobResponse.from_job(job, settings.API_V1_STR) for job in jobs]
    )
