"""
JSON-file record store. Each save rewrites the file atomically.
"""
import asyncio
import json
import os
from pathlib import Path
from typing import Dict, List, Optional

from loguru import logger

from hourswatch.config import RECORDS_PATH
from hourswatch.errors import PersistenceFailed
from hourswatch.models import BusinessRecord


class JsonRecordStore:
    """Stores all records in a single JSON document keyed by record id."""

    def __init__(self, path: str = RECORDS_PATH):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return {item["id"]: item for item in data.get("records", [])}

    def _write(self, rows: Dict[str, dict]) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"records": list(rows.values())}, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, self.path)

    async def fetch_all(self) -> List[BusinessRecord]:
        """
        Load every stored record.

        Raises:
            PersistenceFailed: If the file cannot be read or parsed.
        """
        async with self._lock:
            try:
                rows = await asyncio.to_thread(self._read)
                return [BusinessRecord.from_dict(row) for row in rows.values()]
            except (OSError, ValueError, KeyError) as e:
                raise PersistenceFailed(f"Could not read {self.path}: {e}") from e

    async def get(self, record_id: str) -> Optional[BusinessRecord]:
        for record in await self.fetch_all():
            if record.id == record_id:
                return record
        return None

    async def save(self, record: BusinessRecord) -> None:
        """
        Insert or replace one record.

        Raises:
            PersistenceFailed: If the file cannot be read or written.
        """
        async with self._lock:
            try:
                rows = await asyncio.to_thread(self._read)
                rows[record.id] = record.to_dict()
                await asyncio.to_thread(self._write, rows)
            except (OSError, ValueError, KeyError) as e:
                raise PersistenceFailed(f"Could not save {record.id} to {self.path}: {e}") from e
        logger.debug(f"Saved '{record.display_name}' to {self.path}")
