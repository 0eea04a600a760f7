"""
Entity repositories - load / create / update / delete over one store key
"""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional

from storage.cache import FreshnessCache
from storage.database import KeyValueStore, StoreError
from utils.logging_config import get_contextual_logger

from .client import RetrievalError, SeedLoader
from .models import (
    DataLayerError,
    EntityKind,
    Err,
    IdPolicy,
    NotFoundError,
    Ok,
    Record,
    Result,
    ValidationError,
    format_timestamp,
    is_record_list,
)

logger = logging.getLogger(__name__)


def _clone(records: List[Record]) -> List[Record]:
    # Records are plain JSON documents; a JSON round trip is a fast deep copy
    return json.loads(json.dumps(records))


class EntityRepository:
    """
    Repository for one entity kind (users, courses, quizzes, logs)

    Reads go cache -> persistent store -> seed loader. Writes go through
    the persistent store and then invalidate the cache entry, so the next
    load never serves pre-write data. Mutating operations return a Result
    and never let an exception escape.

    Numeric ids are max(existing) + 1 over the current snapshot. Two
    contexts creating at the same time can hand out the same id; the
    last writer to the store wins.
    """

    def __init__(self,
                 kind: EntityKind,
                 store: KeyValueStore,
                 cache: FreshnessCache,
                 seed_loader: SeedLoader,
                 clock: Optional[Callable[[], float]] = None):
        self.kind = kind
        self.store = store
        self.cache = cache
        self.seed_loader = seed_loader
        self.clock = clock or time.time
        self.last_error: Optional[DataLayerError] = None
        self.logger = get_contextual_logger(__name__, entity=kind.name)

    @property
    def key(self) -> str:
        return self.kind.store_key

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)

    def _epoch_millis(self) -> int:
        return int(self.clock() * 1000)

    def _read_snapshot(self) -> List[Record]:
        document = self.store.get_json(self.key, default=[])
        if not is_record_list(document):
            raise StoreError(f"Corrupt snapshot under '{self.key}': expected a list of records")
        return document

    def _persist(self, records: List[Record]):
        self.store.set_json(self.key, records)
        self.cache.invalidate(self.key)

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def load(self, force_refresh: bool = False) -> List[Record]:
        """
        Load the repository snapshot

        Args:
            force_refresh: Re-fetch the seed document, bypassing every cache

        Returns:
            List of records (a copy the caller may mutate). Empty when
            nothing could be retrieved; the failure is kept in last_error.
        """
        if not force_refresh:
            cached = self.cache.get(self.key)
            if cached is not None:
                return _clone(cached)

        try:
            records = self._read_snapshot()

            if not records or force_refresh:
                records = _clone(
                    self.seed_loader.fetch(self.kind.seed_path, use_cache=not force_refresh)
                )
                self._persist(records)
                self.logger.info(f"Seeded {len(records)} {self.kind.name} from {self.kind.seed_path}")

            self.cache.set(self.key, _clone(records))
            self.last_error = None
            return records

        except (RetrievalError, StoreError) as e:
            self.last_error = e
            self.logger.error(f"Error loading {self.kind.name}: {e}")
            return self._fallback_snapshot()

    def _fallback_snapshot(self) -> List[Record]:
        try:
            fallback = self._read_snapshot()
        except StoreError as e:
            self.logger.error(f"No fallback snapshot for {self.kind.name}: {e}")
            return []

        if fallback:
            self.logger.warning(f"Using fallback data for {self.kind.name} ({len(fallback)} records)")
        return fallback

    def get(self, record_id: Any) -> Optional[Record]:
        for record in self.load():
            if record.get(self.kind.id_field) == record_id:
                return record
        return None

    # ------------------------------------------------------------------
    # writes
    # ------------------------------------------------------------------

    def _next_id(self, records: List[Record]) -> Any:
        if self.kind.id_policy == IdPolicy.NUMERIC:
            existing = [
                value for value in (r.get(self.kind.id_field) for r in records)
                if isinstance(value, (int, float)) and not isinstance(value, bool)
            ]
            return int(max(existing + [0])) + 1
        return self.kind.new_string_id(self._epoch_millis())

    def create(self, data: Mapping[str, Any]) -> Result:
        """
        Append a new record with a generated id and timestamps

        Returns:
            Ok(record) or Err(kind, message)
        """
        try:
            if not isinstance(data, Mapping):
                raise ValidationError(f"Invalid {self.kind.name} payload: expected an object")

            records = self.load()
            new_id = self._next_id(records)
            now = format_timestamp(self._now())

            record: Record = {self.kind.id_field: new_id}
            record.update(data)
            record[self.kind.id_field] = new_id
            record['createdAt'] = now
            record['updatedAt'] = now

            records.append(record)
            self._persist(records)

            self.logger.info(f"Created {self.kind.name} record {new_id}")
            return Ok(record)

        except DataLayerError as e:
            self.logger.error(f"Error creating {self.kind.name} record: {e}")
            return Err.from_exception(e)

    def update(self, record_id: Any, partial: Mapping[str, Any]) -> Result:
        """
        Shallow-merge partial into the first record whose id matches exactly

        Returns:
            Ok(merged record), Err(NotFound) or Err(kind, message)
        """
        try:
            if not isinstance(partial, Mapping):
                raise ValidationError(f"Invalid {self.kind.name} payload: expected an object")

            records = self.load()
            index = next(
                (i for i, r in enumerate(records) if r.get(self.kind.id_field) == record_id),
                None
            )
            if index is None:
                raise NotFoundError(f"{self.kind.label} not found: {record_id}")

            merged = dict(records[index])
            merged.update(partial)
            merged['updatedAt'] = format_timestamp(self._now())
            records[index] = merged

            self._persist(records)

            self.logger.info(f"Updated {self.kind.name} record {record_id}")
            return Ok(merged)

        except DataLayerError as e:
            self.logger.error(f"Error updating {self.kind.name} record {record_id}: {e}")
            return Err.from_exception(e)

    def delete(self, record_id: Any) -> Result:
        """
        Remove every record whose id matches

        Returns:
            Ok(None), Err(NotFound) or Err(kind, message)
        """
        try:
            records = self.load()
            remaining = [r for r in records if r.get(self.kind.id_field) != record_id]

            if len(remaining) == len(records):
                raise NotFoundError(f"{self.kind.label} not found: {record_id}")

            self._persist(remaining)

            self.logger.info(f"Deleted {self.kind.name} record {record_id}")
            return Ok(None)

        except DataLayerError as e:
            self.logger.error(f"Error deleting {self.kind.name} record {record_id}: {e}")
            return Err.from_exception(e)

    def replace(self, records: List[Record]):
        """
        Overwrite the whole snapshot

        Raises:
            ValidationError: If records is not a list of records
            StoreError: If the snapshot cannot be written
        """
        if not is_record_list(records):
            raise ValidationError(f"Invalid {self.kind.name} snapshot: expected a list of records")
        self._persist(list(records))
