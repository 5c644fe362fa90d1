"""
Storage Backend Module

Provides an abstract line-oriented storage interface and implementations for
in-memory (testing) and flat files (persistence). A "table" is an ordered
sequence of ``;``-delimited rows; rows are only ever appended or rewritten
as a whole table.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional, Sequence, Union
from pathlib import Path
import os
import tempfile
import threading

from .errors import InvalidArgumentError, StorageError


DELIMITER = ";"


def join_row(fields: Sequence[object]) -> str:
    """Serialize fields into one delimited row"""
    values = [str(value) for value in fields]
    for value in values:
        if DELIMITER in value or "\n" in value:
            raise InvalidArgumentError(f"Field contains a reserved character: {value!r}")
    return DELIMITER.join(values)


def split_row(line: str, expected_fields: int) -> List[str]:
    """Split a delimited row, checking the field count"""
    fields = line.rstrip("\r\n").split(DELIMITER)
    if len(fields) != expected_fields:
        raise StorageError(
            f"Malformed row (expected {expected_fields} fields, got {len(fields)}): {line!r}"
        )
    return fields


class StorageInterface(ABC):
    """Abstract interface for line storage backends"""
    
    @abstractmethod
    def read_lines(self, table: str) -> List[str]:
        """Read all rows of a table"""
        pass
    
    @abstractmethod
    def iter_lines(self, table: str) -> Iterator[str]:
        """Lazily iterate the rows of a table"""
        pass
    
    @abstractmethod
    def write_lines(self, table: str, lines: Sequence[str]) -> None:
        """Replace the whole table with the given rows"""
        pass
    
    @abstractmethod
    def append_line(self, table: str, line: str) -> None:
        """Append one row to a table"""
        pass
    
    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all rows from a table"""
        pass
    
    def close(self) -> None:
        """Close storage (default no-op)"""
        pass


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""
    
    def __init__(self):
        self._data: Dict[str, List[str]] = {}
        self._lock = threading.RLock()
    
    def _ensure_table(self, table: str) -> List[str]:
        return self._data.setdefault(table, [])
    
    def read_lines(self, table: str) -> List[str]:
        with self._lock:
            return list(self._ensure_table(table))
    
    def iter_lines(self, table: str) -> Iterator[str]:
        # Snapshot so that appends during iteration are not observed
        yield from self.read_lines(table)
    
    def write_lines(self, table: str, lines: Sequence[str]) -> None:
        with self._lock:
            self._data[table] = list(lines)
    
    def append_line(self, table: str, line: str) -> None:
        with self._lock:
            self._ensure_table(table).append(line)
    
    def clear_table(self, table: str) -> None:
        with self._lock:
            self._data[table] = []


class FileStorage(StorageInterface):
    """
    Flat-file storage, one text file per table.
    
    Whole-table rewrites go through a temporary file and ``os.replace`` so a
    crash mid-write leaves either the old or the new file, never a torn one.
    Safe for a single process only.
    """
    
    def __init__(self, base_dir: Union[str, Path], filenames: Optional[Dict[str, str]] = None):
        self.base_dir = Path(base_dir)
        self.filenames = dict(filenames or {})
        self._lock = threading.RLock()
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create data directory {self.base_dir}: {e}") from e
    
    def path_for(self, table: str) -> Path:
        """File backing a table"""
        return self.base_dir / self.filenames.get(table, f"{table}.txt")
    
    def read_lines(self, table: str) -> List[str]:
        with self._lock:
            return list(self.iter_lines(table))
    
    def iter_lines(self, table: str) -> Iterator[str]:
        path = self.path_for(table)
        if not path.exists():
            return
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line in f:
                    line = line.rstrip("\r\n")
                    if line:
                        yield line
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}") from e
    
    def write_lines(self, table: str, lines: Sequence[str]) -> None:
        path = self.path_for(table)
        with self._lock:
            fd, tmp_name = tempfile.mkstemp(dir=str(self.base_dir), prefix=f".{path.name}.")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    for line in lines:
                        f.write(line + "\n")
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, path)
            except OSError as e:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
                raise StorageError(f"Cannot write {path}: {e}") from e
    
    def append_line(self, table: str, line: str) -> None:
        path = self.path_for(table)
        with self._lock:
            try:
                with open(path, "a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError as e:
                raise StorageError(f"Cannot append to {path}: {e}") from e
    
    def clear_table(self, table: str) -> None:
        self.write_lines(table, [])
