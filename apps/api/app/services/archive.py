"""Archive builder: rendered conversation + metadata + attachments in one zip."""

import json
import logging
import shutil
import zipfile
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from app.core.observability import trace_function
from app.models.export_job import ExportFormat
from app.services.renderers import build_summary, format_timestamp
from app.services.snapshot import TicketSnapshot

logger = logging.getLogger(__name__)

MEDIA_PREFIX = "media"
METADATA_NAME = "metadata.json"


@dataclass(frozen=True)
class ArchiveResult:
    """Final artifact produced for a job."""

    file_path: Path
    file_name: str
    file_size: int
    media_entries: tuple[str, ...] = ()
    skipped_media: tuple[str, ...] = ()


@contextmanager
def staging_directory(root: Path, job_id: str) -> Iterator[Path]:
    """Job-scoped scratch directory, removed recursively on every exit path."""
    path = Path(root) / job_id
    shutil.rmtree(path, ignore_errors=True)
    path.mkdir(parents=True, exist_ok=True)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


def archive_file_name(ticket_id: str, export_format: ExportFormat) -> str:
    """User-facing download name."""
    return f"ticket-{ticket_id}-{export_format.extension}.zip"


def unique_media_name(base_name: str, taken: set[str]) -> str:
    """`media/<name>`, suffixed `-1`, `-2`... before the extension until free."""
    candidate = f"{MEDIA_PREFIX}/{base_name}"
    stem, suffix = Path(base_name).stem, Path(base_name).suffix
    counter = 1
    while candidate in taken:
        candidate = f"{MEDIA_PREFIX}/{stem}-{counter}{suffix}"
        counter += 1
    return candidate


class ArchiveBuilder:
    """Bundles a rendered conversation into the downloadable zip artifact."""

    def __init__(self, exports_dir: Path, media_root: Path) -> None:
        self.exports_dir = Path(exports_dir)
        self.media_root = Path(media_root)

    def artifact_path(self, job_id: str) -> Path:
        return self.exports_dir / f"{job_id}.zip"

    def resolve_media_path(self, media_url: Optional[str]) -> Optional[Path]:
        """Locate a stored attachment under the media root.

        Returns None for remote URLs, references escaping the root and files
        that do not exist.
        """
        if not media_url or "://" in media_url:
            return None

        root = self.media_root.resolve()
        candidate = (root / media_url.lstrip("/")).resolve()
        if not candidate.is_relative_to(root):
            return None
        if not candidate.is_file():
            return None
        return candidate

    @trace_function("archive_builder.build")
    def build(
        self,
        *,
        job_id: str,
        export_format: ExportFormat,
        content: bytes,
        snapshot: TicketSnapshot,
        staging_dir: Path,
        generated_at: datetime | None = None,
    ) -> ArchiveResult:
        """Write staging files, zip them and move the zip to its final path."""
        generated_at = generated_at or datetime.now(timezone.utc)
        conversation_name = f"conversation.{export_format.extension}"

        conversation_file = staging_dir / conversation_name
        conversation_file.write_bytes(content)

        metadata = {
            "summary": build_summary(snapshot),
            "generatedAt": format_timestamp(generated_at),
            "format": export_format.value,
        }
        metadata_file = staging_dir / METADATA_NAME
        metadata_file.write_text(json.dumps(metadata, indent=2, ensure_ascii=False), encoding="utf-8")

        staged_zip = staging_dir / "archive.zip"
        taken: set[str] = set()
        skipped: list[str] = []

        with zipfile.ZipFile(staged_zip, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
            zf.write(conversation_file, arcname=conversation_name)
            zf.write(metadata_file, arcname=METADATA_NAME)

            for message in snapshot.messages:
                if not message.media_url:
                    continue
                source = self.resolve_media_path(message.media_url)
                if source is None:
                    skipped.append(message.media_url)
                    continue
                entry = unique_media_name(source.name, taken)
                taken.add(entry)
                zf.write(source, arcname=entry)

        if skipped:
            logger.info(
                "Skipped unresolvable attachments",
                extra={"job_id": job_id, "skipped": len(skipped)},
            )

        self.exports_dir.mkdir(parents=True, exist_ok=True)
        final_path = staged_zip.replace(self.artifact_path(job_id))

        return ArchiveResult(
            file_path=final_path,
            file_name=archive_file_name(snapshot.ticket_id, export_format),
            file_size=final_path.stat().st_size,
            media_entries=tuple(sorted(taken)),
            skipped_media=tuple(skipped),
        )
