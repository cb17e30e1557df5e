"""
JSON File Storage

DESIGN DECISION: A single JSON document on local disk is the default
persistent backend because:
1. The ledger is one document per owner
2. The owner can read and back it up without any tooling
3. No server to run

Writes go to a temporary file in the same directory which then replaces
the real one, so a crash mid-write leaves the previous ledger intact.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Union

import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from moneymind.config import get_settings
from moneymind.models.ledger import LedgerSnapshot
from moneymind.services.storage.interface import LedgerStorageInterface, StorageError


logger = structlog.get_logger(__name__)


class JsonFileLedgerStorage(LedgerStorageInterface):
    """
    Ledger stored as a JSON document on disk.

    A missing file means no ledger yet. A file that exists but does not
    parse is an error; it is never silently replaced.
    """

    def __init__(
        self,
        path: Union[str, Path, None] = None,
        retry_attempts: Optional[int] = None,
    ):
        settings = get_settings().storage
        if path is None:
            path = settings.ledger_path
        if not path:
            raise StorageError("No ledger path configured (MONEYMIND_STORAGE_LEDGER_PATH)")
        self._path = Path(path)

        # Transient filesystem errors (locked file, full disk being cleared)
        self._write = retry(
            retry=retry_if_exception_type(OSError),
            stop=stop_after_attempt(retry_attempts or settings.retry_attempts),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            reraise=True,
        )(self._write_once)

    @property
    def path(self) -> Path:
        return self._path

    async def load_snapshot(self) -> Optional[LedgerSnapshot]:
        if not self._path.exists():
            return None
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
            return LedgerSnapshot.from_document(document)
        except (OSError, ValueError) as e:
            raise StorageError(f"Failed to read ledger {self._path}: {e}") from e

    def _write_once(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent,
            prefix=f".{self._path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    async def save_snapshot(self, snapshot: LedgerSnapshot) -> bool:
        payload = json.dumps(snapshot.to_document(), indent=2, ensure_ascii=False)
        try:
            self._write(payload)
        except OSError as e:
            raise StorageError(f"Failed to save ledger {self._path}: {e}") from e
        logger.debug("ledger_saved", path=str(self._path), bytes=len(payload))
        return True
