"""Metadata store: one JSON file per sharing code on local disk.

Single-file ``put`` and ``delete`` are atomic (write to a temp file, then
rename). ``update`` is a plain read-modify-write with no locking, so two
concurrent updates of the same code are last-write-wins.
"""
import json
import logging
import os
import uuid
from pathlib import Path
from typing import List, Optional

import aiofiles
import aiofiles.os
from pydantic import ValidationError as PydanticValidationError

from codedrop.errors import NotFoundError, PersistenceError
from codedrop.models.file_record import FileRecord
from codedrop.services.codes import is_valid_code, normalize_code

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".json"


class MetadataStore:
    """Persists FileRecords under ``<base_path>/<CODE>.json``."""

    def __init__(self, base_path: Path, strict: bool = False):
        self.base_path = Path(base_path)
        self.strict = strict

    def path_for(self, code: str) -> Path:
        return self.base_path / f"{code}{RECORD_SUFFIX}"

    async def ensure_ready(self) -> bool:
        """Create the metadata directory. Only raises in strict mode."""
        try:
            await aiofiles.os.makedirs(self.base_path, exist_ok=True)
            if not await aiofiles.os.path.isdir(self.base_path):
                raise PersistenceError(f"Failed to create metadata directory: {self.base_path}")
        except (OSError, PersistenceError) as e:
            if self.strict:
                if isinstance(e, PersistenceError):
                    raise
                raise PersistenceError(f"Failed to create metadata directory {self.base_path}: {e}") from e
            logger.warning("Metadata directory %s unavailable: %s", self.base_path, e)
            return False
        logger.info("Metadata store ready at %s", self.base_path)
        return True

    async def put(self, record: FileRecord) -> FileRecord:
        """Persist or overwrite the record keyed by its code."""
        if not is_valid_code(record.code):
            raise PersistenceError(f"Refusing to persist record with invalid code {record.code!r}")
        target = self.path_for(record.code)
        tmp = target.with_name(f".{record.code}.{uuid.uuid4().hex}.tmp")
        try:
            await aiofiles.os.makedirs(self.base_path, exist_ok=True)
            async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
                await f.write(record.to_json())
            await aiofiles.os.replace(tmp, target)
        except OSError as e:
            try:
                await aiofiles.os.remove(tmp)
            except OSError:
                pass
            raise PersistenceError(f"Failed to write metadata file {target}: {e}") from e
        return record

    async def get(self, code: str) -> Optional[FileRecord]:
        """Exact lookup. Missing, unparsable and malformed codes all read as absent."""
        code = normalize_code(code)
        if not is_valid_code(code):
            return None
        return await self._read(self.path_for(code))

    async def update(self, code: str, **fields) -> FileRecord:
        """Merge ``fields`` (snake_case) into the stored record and write it back."""
        existing = await self.get(code)
        if existing is None:
            raise NotFoundError(f"No file for code {normalize_code(code)}")
        merged = existing.model_copy(update=fields)
        # model_copy skips validation; round-trip so bad values are rejected
        merged = FileRecord.model_validate(merged.model_dump())
        return await self.put(merged)

    async def list_all(self) -> List[FileRecord]:
        """Every readable record, in no particular order."""
        try:
            names = await aiofiles.os.listdir(self.base_path)
        except FileNotFoundError:
            return []
        except OSError as e:
            raise PersistenceError(f"Failed to list metadata directory {self.base_path}: {e}") from e

        records = []
        for name in names:
            if not name.endswith(RECORD_SUFFIX) or name.startswith("."):
                continue
            record = await self._read(self.base_path / name)
            if record is not None:
                records.append(record)
        return records

    async def delete(self, code: str, expected_id: Optional[str] = None) -> bool:
        """Remove the record; absent records are not an error.

        With ``expected_id`` the file is only removed while it still holds that
        record, so a fresh upload that reused the code survives. Returns whether
        a matching record was there to delete.
        """
        code = normalize_code(code)
        if not is_valid_code(code):
            return False
        if expected_id is not None:
            current = await self.get(code)
            if current is None or current.id != expected_id:
                return False
        try:
            await aiofiles.os.remove(self.path_for(code))
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(f"Failed to delete metadata for {code}: {e}") from e
        return True

    async def _read(self, path: Path) -> Optional[FileRecord]:
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                data = await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Metadata read error for %s: %s", path, e)
            return None
        try:
            return FileRecord.model_validate(json.loads(data))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning("Skipping unparsable metadata file %s: %s", os.path.basename(path), e)
            return None
