import json
import threading
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from rawhost.logging_config import get_logger
from rawhost.models import FileRecord

logger = get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FileRepository:
    """In-memory metadata map, written through to a JSON document on every change."""

    def __init__(self, metadata_path: str):
        self.metadata_path = Path(metadata_path)
        self._records: dict[str, FileRecord] = {}
        self._lock = threading.Lock()

    def init(self) -> None:
        self.metadata_path.parent.mkdir(parents=True, exist_ok=True)
        self._records = self._load()
        logger.info("Loaded %d file records from %s", len(self._records), self.metadata_path)

    def _load(self) -> dict[str, FileRecord]:
        if not self.metadata_path.exists():
            return {}
        try:
            raw = json.loads(self.metadata_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Metadata file %s unreadable, starting empty: %s", self.metadata_path, exc)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Metadata file %s is not an object, starting empty", self.metadata_path)
            return {}

        records = {}
        for file_id, entry in raw.items():
            try:
                records[file_id] = FileRecord.model_validate(entry)
            except ValidationError:
                logger.warning("Skipping malformed metadata entry %s", file_id)
        return records

    def _flush(self) -> None:
        snapshot = {file_id: record.model_dump(mode="json") for file_id, record in self._records.items()}
        tmp_path = self.metadata_path.with_suffix(self.metadata_path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(snapshot, indent=2), encoding="utf-8")
        tmp_path.replace(self.metadata_path)

    def put(self, record: FileRecord) -> FileRecord:
        with self._lock:
            self._records[record.id] = record
            self._flush()
        return record

    def create_file(
        self,
        *,
        file_id: str,
        original_name: str,
        stored_name: str,
        mime_type: str,
        size: int,
        access_password: str | None = None,
    ) -> FileRecord:
        record = FileRecord(
            id=file_id,
            original_name=original_name,
            stored_name=stored_name,
            mime_type=mime_type,
            size=size,
            locked=False,
            uploaded_at=utc_now(),
            access_password=access_password,
        )
        return self.put(record)

    def get(self, file_id: str) -> FileRecord | None:
        return self._records.get(file_id)

    def list_files(self) -> list[FileRecord]:
        records = list(self._records.values())
        records.sort(key=lambda record: record.uploaded_at, reverse=True)
        return records

    def set_locked(self, file_id: str, locked: bool) -> FileRecord | None:
        with self._lock:
            record = self._records.get(file_id)
            if record is None:
                return None
            updated = record.model_copy(update={"locked": locked})
            self._records[file_id] = updated
            self._flush()
        return updated

    def toggle_lock(self, file_id: str) -> FileRecord | None:
        with self._lock:
            record = self._records.get(file_id)
            if record is None:
                return None
            updated = record.model_copy(update={"locked": not record.locked})
            self._records[file_id] = updated
            self._flush()
        logger.info("File %s lock set to %s", file_id, updated.locked)
        return updated
