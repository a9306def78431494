"""Persisted import status and batch progress."""
import logging
from datetime import datetime
from pathlib import Path

from screener.core.files import read_json, write_json_atomic
from screener.models import BatchProgress, ImportStatus, StatusRecord

logger = logging.getLogger(__name__)


class StatusStore:
    """Reads and writes ``import_status.json`` and ``batch_progress.json``.

    Both are single records overwritten in place and polled by the API.
    """

    STATUS_FILE = "import_status.json"
    PROGRESS_FILE = "batch_progress.json"

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.status_file = self.base_path / self.STATUS_FILE
        self.progress_file = self.base_path / self.PROGRESS_FILE

    # =========================================================================
    # Import status
    # =========================================================================

    def read_status(self) -> StatusRecord:
        """Current status; ``idle`` when nothing has run yet."""
        try:
            raw = read_json(self.status_file)
        except (OSError, ValueError) as e:
            logger.warning(f"Error reading import status: {e}")
            return StatusRecord(
                status=ImportStatus.ERROR,
                last_error=str(e),
                message="Import status file is unreadable",
            )

        if raw is None:
            return StatusRecord()
        return StatusRecord.from_dict(raw)

    def write_status(self, record: StatusRecord) -> None:
        write_json_atomic(self.status_file, record.to_dict())

    def update_status(
        self,
        status: ImportStatus,
        message: str,
        error: str | None = None,
        rate_limit_reset: datetime | None = None,
    ) -> StatusRecord:
        """Overwrite the status record, keeping the previous last error on success."""
        previous = self.read_status()
        record = StatusRecord(
            status=status,
            last_run=datetime.now(),
            last_error=error if error is not None else previous.last_error,
            rate_limit_reset=rate_limit_reset,
            message=message,
        )
        self.write_status(record)

        logger.debug(
            f"STATE: Import status -> {status.value}",
            extra={
                "extra_data": {
                    "action": "status_update",
                    "status": status.value,
                    "message": message,
                    "error": error,
                }
            },
        )
        return record

    # =========================================================================
    # Batch progress
    # =========================================================================

    def read_progress(self) -> BatchProgress:
        try:
            raw = read_json(self.progress_file)
        except (OSError, ValueError) as e:
            logger.warning(f"Error reading batch progress: {e}")
            return BatchProgress()

        if raw is None:
            return BatchProgress()
        return BatchProgress.from_dict(raw)

    def write_progress(self, progress: BatchProgress) -> None:
        progress.last_updated = datetime.now()
        write_json_atomic(self.progress_file, progress.to_dict())
