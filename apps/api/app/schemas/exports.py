"""Export schemas."""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.core.database import as_utc
from app.models.export_job import ExportJob, ExportStatus


class CamelModel(BaseModel):
    """Serializes with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ExportRequest(BaseModel):
    """Export request schema.

    `format` is matched case-insensitively; unknown values fall back to DOCUMENT.
    """

    format: Optional[Any] = None


class ContactSummary(CamelModel):
    name: str
    phone_number: str


class TicketSummary(CamelModel):
    id: str
    contact: ContactSummary


class UserSummary(CamelModel):
    id: str
    name: str


class ExportJobResponse(CamelModel):
    """Public projection of an export job."""

    id: str
    ticket_id: str
    format: str
    status: str
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    preview: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    ticket: Optional[TicketSummary] = None
    requested_by: Optional[UserSummary] = None
    download_url: Optional[str] = None

    @classmethod
    def from_job(cls, job: ExportJob, api_prefix: str = "/v1") -> "ExportJobResponse":
        ticket = None
        if job.ticket is not None:
            ticket = TicketSummary(
                id=job.ticket.id,
                contact=ContactSummary(
                    name=job.ticket.contact.name,
                    phone_number=job.ticket.contact.phone_number,
                ),
            )

        download_url = None
        if (
            job.status == ExportStatus.COMPLETED.value
            and job.file_path
            and Path(job.file_path).is_file()
        ):
            download_url = f"{api_prefix}/exports/{job.id}/download"

        return cls(
            id=job.id,
            ticket_id=job.ticket_id,
            format=job.format,
            status=job.status,
            file_name=job.file_name,
            file_size=job.file_size,
            created_at=as_utc(job.created_at),
            updated_at=as_utc(job.updated_at),
            started_at=as_utc(job.started_at),
            completed_at=as_utc(job.completed_at),
            expires_at=as_utc(job.expires_at),
            preview=job.preview,
            error=job.error,
            ticket=ticket,
            requested_by=UserSummary(id=job.user.id, name=job.user.name) if job.user else None,
            download_url=download_url,
        )


class ExportJobListResponse(BaseModel):
    """Export job list."""

    items: List[ExportJobResponse]
