"""Export job status and download endpoints."""

from pathlib import Path
from typing import Iterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.observability import trace_function
from app.schemas.exports import ExportJobResponse
from app.services.exports import ConversationExportService

router = APIRouter()

CHUNK_SIZE = 64 * 1024


def _iter_file(path: Path) -> Iterator[bytes]:
    with path.open("rb") as f:
        while chunk := f.read(CHUNK_SIZE):
            yield chunk


@router.get("/{job_id}", response_model=ExportJobResponse)
@trace_function("export_endpoint.get_export")
async def get_export(
    job_id: str,
    db: AsyncSession = Depends(get_db),
) -> ExportJobResponse:
    """Get export job status."""
    job = await ConversationExportService(db).get_job(job_id)
    return ExportJobResponse.from_job(job, settings.API_V1_STR)


@router.get("/{job_id}/download")
@trace_function("export_endpoint.download_export")
async def download_export(
    job_id: str,
    db: AsyncSession = Depends(get_db),
) -> StreamingResponse:
    """Download the export archive."""
    artifact = await ConversationExportService(db).open_download(job_id)

    return StreamingResponse(
        _iter_file(artifact.path),
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{artifact.file_name}"',
            "Content-Length": str(artifact.size),
        },
    )
