"""
Response Cache - captured GraphQL payloads indexed by query name
Every payload is appended in memory and written to the output root as it
arrives, so the cache doubles as an audit trail of the run.
"""

import itertools
import json
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from loguru import logger

from .utils import sanitize_filename

Predicate = Callable[[Dict[str, Any]], bool]


@dataclass(frozen=True)
class CapturedPayload:
    """One stored response for a query name"""
    query_name: str
    sequence: int
    payload: Dict[str, Any]
    path: Path


class ResponseCache:
    """Append-only store of captured payloads, one ordered list per query name"""

    def __init__(self, output_dir: Union[str, Path]):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._entries: Dict[str, List[CapturedPayload]] = {}
        self._sequence = itertools.count()
        self._lock = threading.Lock()

    def record(self, query_name: str, payload: Dict[str, Any]) -> CapturedPayload:
        """Append payload to query_name's sequence and persist it as <epoch-ms>_<name>_<seq>.json"""
        with self._lock:
            sequence = next(self._sequence)
            timestamp = int(time.time() * 1000)
            path = self.output_dir / f"{timestamp}_{sanitize_filename(query_name)}_{sequence}.json"
            captured = CapturedPayload(query_name=query_name, sequence=sequence, payload=payload, path=path)
            self._entries.setdefault(query_name, []).append(captured)

        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.debug(f"Cached {query_name} #{sequence} -> {path.name}")
        return captured

    def lookup(self, query_name: str, predicate: Optional[Predicate] = None) -> Optional[Dict[str, Any]]:
        """First payload recorded under query_name that satisfies predicate, or None"""
        for captured in self._entries.get(query_name, []):
            if predicate is None or predicate(captured.payload):
                return captured.payload
        return None

    def entries(self, query_name: str) -> List[CapturedPayload]:
        return list(self._entries.get(query_name, []))

    def query_names(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, query_name: str) -> bool:
        return bool(self._entries.get(query_name))

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())
