"""NDJSON collection files: one JSON document per line, one file per collection."""
import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from hubrota.errors import StorageError
from hubrota.utils.logging_setup import get_logger

logger = get_logger("hubrota.io.ndjson")

COLLECTIONS = (
    "events",
    "occurrences",
    "rotas",
    "contacts",
    "holidays",
    "lists",
    "rota_tokens",
    "event_tokens",
)


class NdjsonStore:
    """Reads and writes whole collections under a data directory."""

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)

    def path(self, collection: str) -> Path:
        return self.data_dir / f"{collection}.ndjson"

    def read_collection(self, collection: str) -> List[Dict[str, Any]]:
        """
        Load every record of a collection.

        A missing file is an empty collection. A line that is not a JSON
        object makes the whole collection unreadable.
        """
        path = self.path(collection)
        if not path.exists():
            logger.warning(f"File not found: {path}")
            return []
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(collection, str(e)) from e

        records = []
        for lineno, line in enumerate(content.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                raise StorageError(collection, f"line {lineno}: {e.msg}") from e
            if not isinstance(record, dict):
                raise StorageError(collection, f"line {lineno}: expected an object")
            records.append(record)
        return records

    def write_collection(self, collection: str, records: Iterable[Dict[str, Any]]) -> None:
        """Replace a collection, writing to a temporary file first."""
        path = self.path(collection)
        tmp = path.with_suffix(".ndjson.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as fh:
                for record in records:
                    fh.write(json.dumps(record, ensure_ascii=False) + "\n")
            os.replace(tmp, path)
        except OSError as e:
            raise StorageError(collection, str(e)) from e

    def read_all(self) -> Dict[str, List[Dict[str, Any]]]:
        return {name: self.read_collection(name) for name in COLLECTIONS}
