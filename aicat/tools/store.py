"""
Thread-safe JSON persistence for the owner-managed automation stores.

Each store keeps a dict of id -> dataclass record in memory and rewrites its
JSON file after every mutation. Callers mutate under ``self._lock`` and call
``_save()`` before releasing it.
"""

import json
import logging
import threading
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict, Generic, Iterator, List, Optional, Tuple, Type, TypeVar

logger = logging.getLogger("AICat.Store")

T = TypeVar("T")


class JsonStore(Generic[T]):
    filename: str = "store.json"
    record_type: Type[T]

    def __init__(self, data_dir="data") -> None:
        self._path = Path(data_dir) / self.filename
        self._lock = threading.Lock()
        self._records: Dict[str, T] = {}
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _decode(self, raw: Dict[str, Any]) -> T:
        known = {f.name for f in fields(self.record_type)}
        return self.record_type(**{k: v for k, v in raw.items() if k in known})

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            self._records = {str(k): self._decode(v) for k, v in raw.items()}
            logger.info(f"Loaded {len(self._records)} record(s) from {self._path}")
        except (OSError, ValueError, TypeError, AttributeError):
            logger.warning(f"Failed to load {self._path}; starting fresh", exc_info=True)
            self._records = {}

    def _save(self) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            payload = {k: asdict(v) for k, v in self._records.items()}
            self._path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError:
            logger.error(f"Failed to save {self._path}", exc_info=True)

    def get(self, record_id: str) -> Optional[T]:
        with self._lock:
            return self._records.get(str(record_id))

    def items(self) -> List[Tuple[str, T]]:
        with self._lock:
            return list(self._records.items())

    def __contains__(self, record_id: str) -> bool:
        return str(record_id) in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._records))
