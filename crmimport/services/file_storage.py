"""Storage for uploaded import spreadsheets."""

import re
import uuid
from datetime import datetime, timezone
from pathlib import Path

import aiofiles

from crmimport.config import settings
from crmimport.services.import_service.errors import StoredFileMissingError

# Characters kept in the stored copy of a user-supplied filename
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._ -]+")
_MAX_FILENAME_LENGTH = 255


def sanitize_filename(filename: str | None) -> str:
    """Reduce a client-supplied filename to a safe display name.

    Directory components are dropped and unexpected characters replaced.
    """
    if not filename:
        return "upload"
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    name = _UNSAFE_FILENAME_CHARS.sub("_", name).strip(" .")
    return name[:_MAX_FILENAME_LENGTH] or "upload"


class ImportFileStorage:
    """Keeps raw upload bytes on disk under randomized names."""

    def __init__(self, storage_path: Path | None = None) -> None:
        """Initialize the storage.

        Args:
            storage_path: Directory for stored files. Defaults to config setting.
        """
        self.storage_path = storage_path or settings.imports_dir
        self.storage_path.mkdir(parents=True, exist_ok=True)

    def _path_for(self, storage_name: str) -> Path:
        # Stored names are generated here, never taken from a client
        if Path(storage_name).name != storage_name:
            raise StoredFileMissingError(f"Invalid storage name '{storage_name}'")
        return self.storage_path / storage_name

    async def write(self, content: bytes, extension: str) -> str:
        """Persist ``content`` and return its generated storage name.

        Args:
            content: Raw file bytes.
            extension: Original extension without the dot (e.g. "csv").

        Returns:
            Storage name of the form ``{timestamp}_{uuid}.{extension}``.
        """
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        storage_name = f"{timestamp}_{uuid.uuid4().hex}.{extension.lstrip('.').lower()}"

        async with aiofiles.open(self._path_for(storage_name), "wb") as f:
            await f.write(content)

        return storage_name

    async def read(self, storage_name: str) -> bytes:
        """Read a stored file back.

        Raises:
            StoredFileMissingError: If the file no longer exists.
        """
        path = self._path_for(storage_name)
        if not path.exists():
            raise StoredFileMissingError(
                "The uploaded file for this import could not be found. Please upload it again."
            )
        async with aiofiles.open(path, "rb") as f:
            return await f.read()
