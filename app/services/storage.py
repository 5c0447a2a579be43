import logging
import re
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4

from app.core.config import settings
from app.services.errors import FileTooLarge

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class UploadedFile:
    filename: str
    data: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class StoredFile:
    key: str
    url: str
    size: int


class LocalFileStorage:
    """Stores uploaded files on disk; the app serves them under /files."""

    def __init__(
        self,
        root: str | Path | None = None,
        public_base_url: str | None = None,
        max_bytes: int | None = None,
    ):
        self.root = Path(root or settings.storage_dir)
        self.public_base_url = (public_base_url or settings.app_base_url).rstrip("/")
        self.max_bytes = max_bytes if max_bytes is not None else settings.max_upload_bytes

    def check_size(self, size: int) -> None:
        if size > self.max_bytes:
            raise FileTooLarge(size, self.max_bytes)

    def save(self, data: bytes, filename: str) -> StoredFile:
        self.check_size(len(data))
        key = f"{uuid4()}-{_safe_name(filename)}"

        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / key).write_bytes(data)

        logger.info("file_stored", extra={"storage_key": key})
        return StoredFile(key=key, url=f"{self.public_base_url}/files/{key}", size=len(data))

    def delete(self, key: str) -> bool:
        """Best effort; a file that is already gone is not an error."""
        path = self._path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("file_deleted", extra={"storage_key": key})
        return True

    def _path_for(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key in (".", ".."):
            raise ValueError(f"invalid storage key: {key!r}")
        return self.root / key


def _safe_name(filename: str) -> str:
    name = Path(filename or "file").name
    name = _UNSAFE_CHARS.sub("_", name).strip("._") or "file"
    return name[:200]
