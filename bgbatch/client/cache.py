"""
Result Cache

Client-local durable store of completed results. The backing file is a
JSON key/value document; the cache owns one key holding an ordered list of
{url, name} records. The file is read once at construction and rewritten
on every mutation.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from pydantic import BaseModel

from bgbatch.core.logging import get_logger

logger = get_logger(__name__)


class ResultEntry(BaseModel):
    """One processed file the client can fetch."""
    url: str
    name: str


class ResultCache:
    """
    Ordered, append-only-with-delete list of ResultEntry records.

    Entries keep append order; duplicates are kept as-is.
    """

    def __init__(self, path: Union[str, Path], key: str = "processedImages"):
        self.path = Path(path)
        self.key = key
        self._document: Dict[str, Any] = self._read()
        self._entries: List[ResultEntry] = [
            ResultEntry(**record) for record in self._document.get(key, [])
        ]

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            document = json.load(f)
        if not isinstance(document, dict):
            raise ValueError(f"Result cache {self.path} is not a JSON object")
        return document

    def _write(self) -> None:
        self._document[self.key] = [entry.model_dump() for entry in self._entries]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._document, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

    def append(self, entries: Iterable[ResultEntry]) -> None:
        new_entries = list(entries)
        self._entries.extend(new_entries)
        self._write()
        logger.debug("result_cache_appended", count=len(new_entries), total=len(self._entries))

    def remove(self, name: str) -> int:
        """Delete every entry with this name. Returns how many were removed."""
        kept = [entry for entry in self._entries if entry.name != name]
        removed = len(self._entries) - len(kept)
        self._entries = kept
        self._write()
        logger.debug("result_cache_removed", name=name, removed=removed)
        return removed

    def load_all(self) -> List[ResultEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
