"""Persistence backends for the goal link cache."""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List
from goal_replays.utils.logger import app_logger

Record = Dict[str, Any]


def _convert_to_timestamp(data: Record) -> Record:
    """Convert datetime values in a record to ISO format strings.

    Args:
        data (dict): Record possibly containing datetime objects

    Returns:
        dict: Record with datetime objects converted to ISO format strings
    """
    result = {}
    for key, value in data.items():
        if isinstance(value, datetime):
            result[key] = value.isoformat()
        else:
            result[key] = value
    return result


class LinkStorage(ABC):
    """Durable store for the full list of cache records."""

    @abstractmethod
    def load(self) -> List[Record]:
        """Return every stored record, or an empty list if nothing usable is stored."""

    @abstractmethod
    def save(self, records: List[Record]) -> None:
        """Replace the stored records.

        Raises:
            OSError: If the records could not be written
        """


class JsonFileStorage(LinkStorage):
    """Stores records as a JSON array, rewriting the whole file on each save."""

    def __init__(self, filename: str):
        self.filename = filename

    def load(self) -> List[Record]:
        """Load records from the JSON file.

        A missing file is an empty cache. An unreadable or corrupt file is
        logged and also treated as empty.

        Returns:
            list: Records loaded from the file
        """
        if not os.path.exists(self.filename):
            return []

        try:
            with open(self.filename, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            app_logger.error(f"Failed to load data from {self.filename}: {str(e)}")
            return []

        if not isinstance(data, list):
            app_logger.error(f"Ignoring {self.filename}: expected a JSON array, got {type(data).__name__}")
            return []

        app_logger.debug(f"Loaded {len(data)} records from {self.filename}")
        return data

    def save(self, records: List[Record]) -> None:
        """Write records to the JSON file atomically.

        Args:
            records (list): Records to save
        """
        directory = os.path.dirname(self.filename) or '.'
        os.makedirs(directory, exist_ok=True)

        payload = [_convert_to_timestamp(record) for record in records]
        fd, tmp_path = tempfile.mkstemp(prefix='.goal_links.', suffix='.tmp', dir=directory)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_path, self.filename)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

        app_logger.debug(f"Saved {len(payload)} records to {self.filename}")


class MemoryStorage(LinkStorage):
    """Keeps records in process memory only."""

    def __init__(self, records: List[Record] = None):
        self.records: List[Record] = [dict(r) for r in records or []]
        self.save_count = 0

    def load(self) -> List[Record]:
        return [dict(r) for r in self.records]

    def save(self, records: List[Record]) -> None:
        self.records = [_convert_to_timestamp(r) for r in records]
        self.save_count += 1
