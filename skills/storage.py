"""Key/record storage backends for sessions and A/B tests.

Records are plain JSON-compatible dicts; the stores on top validate them into
schemas. Single-process, single-operator use is assumed: nothing here locks,
and concurrent writers to one key get last-writer-wins.
"""

from __future__ import annotations

import copy
import json
import re
from pathlib import Path
from typing import Dict, List, Optional, Protocol

_KEY_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class RecordBackend(Protocol):
    def put(self, key: str, record: Dict[str, object]) -> None: ...

    def get(self, key: str) -> Optional[Dict[str, object]]: ...

    def scan_all(self) -> List[Dict[str, object]]: ...

    def keys(self) -> List[str]: ...


def validate_key(key: str) -> str:
    if not isinstance(key, str) or not _KEY_RE.match(key):
        raise ValueError(f"Invalid record key: {key!r}")
    return key


class JsonDirectoryBackend:
    """One ``<key>.json`` file per record under ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _path(self, key: str) -> Path:
        return self.root / f"{validate_key(key)}.json"

    def put(self, key: str, record: Dict[str, object]) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(record, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")

    def get(self, key: str) -> Optional[Dict[str, object]]:
        path = self._path(key)
        if not path.exists():
            return None
        return self._read(path)

    def keys(self) -> List[str]:
        if not self.root.is_dir():
            return []
        return sorted(path.stem for path in self.root.glob("*.json") if path.is_file())

    def scan_all(self) -> List[Dict[str, object]]:
        records: List[Dict[str, object]] = []
        for key in self.keys():
            data = self._read(self.root / f"{key}.json")
            if data is not None:
                records.append(data)
        return records

    def _read(self, path: Path) -> Optional[Dict[str, object]]:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None


class InMemoryBackend:
    def __init__(self) -> None:
        self._records: Dict[str, Dict[str, object]] = {}

    def put(self, key: str, record: Dict[str, object]) -> None:
        self._records[validate_key(key)] = copy.deepcopy(record)

    def get(self, key: str) -> Optional[Dict[str, object]]:
        record = self._records.get(key)
        return copy.deepcopy(record) if record is not None else None

    def keys(self) -> List[str]:
        return sorted(self._records)

    def scan_all(self) -> List[Dict[str, object]]:
        return [copy.deepcopy(self._records[key]) for key in self.keys()]
