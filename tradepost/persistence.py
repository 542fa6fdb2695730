"""
persistence.py - Snapshot stores for the trading engine

A store holds one JSON-compatible snapshot dict. The engine decides what goes
in it (see TradeEngine.snapshot); stores only keep it.
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Optional, Union
import copy
import json
import os
import tempfile


class MemoryStore:
    """
    Keeps the snapshot in memory as a deep copy.

    `data` is exposed so tests can corrupt persisted state between save and load.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data = copy.deepcopy(data)
        self.saves = 0

    def load(self) -> Optional[Dict[str, Any]]:
        return copy.deepcopy(self.data)

    def save(self, snapshot: Dict[str, Any]) -> None:
        self.data = copy.deepcopy(snapshot)
        self.saves += 1


class JsonFileStore:
    """
    Keeps the snapshot in a JSON file.

    Saves write a temporary file in the same directory and rename it over the
    target, so a crash mid-save leaves the previous snapshot intact.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Optional[Dict[str, Any]]:
        """
        Returns:
            The stored snapshot, or None if the file does not exist

        Raises:
            ValueError: If the file is not a JSON object
        """
        if not self.path.exists():
            return None
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path}: snapshot must be a JSON object")
        return data

    def save(self, snapshot: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, indent=2, sort_keys=True)
            os.replace(tmp, self.path)
        except Exception:
            os.unlink(tmp)
            raise
