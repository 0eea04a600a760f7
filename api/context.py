"""
Process-wide data context

Builds the store, cache, seed loader, repositories and log writers once
and hands them to collaborators (CLI, query layer, backup manager).
"""

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from dotenv import load_dotenv

from storage.cache import FreshnessCache, DEFAULT_TTL_SECONDS
from storage.database import KeyValueStore, StoreError

from .activity import ActivityLogWriter, AuthActivityLog, DEFAULT_LOG_CAPACITY
from .client import SeedLoader
from .models import (
    DEFAULT_SETTINGS,
    DEFAULT_STORE_DOCUMENTS,
    ENTITY_KINDS,
    Err,
    Ok,
    Record,
    Result,
    ValidationError,
)
from .repository import EntityRepository

logger = logging.getLogger(__name__)

SETTINGS_KEY = 'appSettings'


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        logger.warning(f"Invalid integer for {name}, using {default}")
        return default


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        logger.warning(f"Invalid number for {name}, using {default}")
        return default


@dataclass
class DataLayerConfig:
    """Configuration for the data layer"""
    store_path: str = "./data/elearning.db"
    seed_base_url: str = "./data/seed"
    seed_timeout: float = 10.0
    cache_ttl_seconds: float = DEFAULT_TTL_SECONDS
    store_quota_bytes: int = 5 * 1024 * 1024
    log_capacity: int = DEFAULT_LOG_CAPACITY

    @classmethod
    def from_environment(cls, env_file: Optional[str] = 'config.env') -> 'DataLayerConfig':
        """Read configuration from environment variables (and config.env when present)"""
        if env_file:
            load_dotenv(env_file)

        return cls(
            store_path=os.getenv('STORE_PATH', cls.store_path),
            seed_base_url=os.getenv('SEED_BASE_URL', cls.seed_base_url),
            seed_timeout=_float_env('SEED_TIMEOUT_SECONDS', cls.seed_timeout),
            cache_ttl_seconds=_float_env('CACHE_TTL_SECONDS', cls.cache_ttl_seconds),
            store_quota_bytes=_int_env('STORE_QUOTA_BYTES', cls.store_quota_bytes),
            log_capacity=_int_env('LOG_CAPACITY', cls.log_capacity),
        )


class DataContext:
    """
    One instance per process (or per simulated browser tab)

    Several contexts opened on the same store path see each other's
    writes through store change notifications, which invalidate the
    matching cache keys. There is no cross-context locking.
    """

    def __init__(self,
                 config: Optional[DataLayerConfig] = None,
                 clock: Optional[Callable[[], float]] = None):
        self.config = config or DataLayerConfig()
        self.clock = clock or time.time

        self.store = KeyValueStore(self.config.store_path, quota_bytes=self.config.store_quota_bytes)
        self.cache = FreshnessCache(ttl_seconds=self.config.cache_ttl_seconds, clock=self.clock)
        self.cache.attach(self.store)

        self.seed_loader = SeedLoader(
            base_url=self.config.seed_base_url,
            cache=self.cache,
            timeout=self.config.seed_timeout
        )

        self.repositories: Dict[str, EntityRepository] = {
            name: EntityRepository(kind, self.store, self.cache, self.seed_loader, clock=self.clock)
            for name, kind in ENTITY_KINDS.items()
        }

        self.activity_log = ActivityLogWriter(
            self.repositories['logs'],
            capacity=self.config.log_capacity,
            user_agent=self.seed_loader.user_agent,
            clock=self.clock
        )
        self.auth_log = AuthActivityLog(self.store, capacity=self.config.log_capacity, clock=self.clock)

        self.initialize_storage()

    @property
    def users(self) -> EntityRepository:
        return self.repositories['users']

    @property
    def courses(self) -> EntityRepository:
        return self.repositories['courses']

    @property
    def quizzes(self) -> EntityRepository:
        return self.repositories['quizzes']

    @property
    def logs(self) -> EntityRepository:
        return self.repositories['logs']

    def repository(self, name: str) -> EntityRepository:
        """
        Look up a repository by collection name

        Raises:
            ValidationError: For unknown collections
        """
        try:
            return self.repositories[name]
        except KeyError:
            raise ValidationError(
                f"Unknown collection '{name}' (expected one of: {', '.join(self.repositories)})"
            ) from None

    # ------------------------------------------------------------------
    # store maintenance
    # ------------------------------------------------------------------

    def initialize_storage(self):
        """Create every well-known store key that is missing"""
        for key, document in DEFAULT_STORE_DOCUMENTS.items():
            if not self.store.has(key):
                self.store.set_json(key, document)
                logger.debug(f"Initialized store key '{key}'")

    def remove(self, key: str) -> bool:
        try:
            self.store.remove_item(key)
        except StoreError as e:
            logger.error(f"Error removing from storage ({key}): {e}")
            return False
        self.cache.invalidate(key)
        return True

    def clear_storage(self) -> bool:
        """Wipe the store and cache, then recreate the default keys"""
        try:
            self.store.clear()
            self.cache.clear()
            self.initialize_storage()
        except StoreError as e:
            logger.error(f"Error clearing storage: {e}")
            return False
        return True

    # ------------------------------------------------------------------
    # settings
    # ------------------------------------------------------------------

    def get_settings(self) -> Record:
        try:
            settings = self.store.get_json(SETTINGS_KEY, default=None)
        except StoreError as e:
            logger.error(f"Error reading settings: {e}")
            settings = None
        if not isinstance(settings, dict):
            return dict(DEFAULT_SETTINGS)
        return settings

    def update_settings(self, partial: Mapping[str, Any]) -> Result:
        if not isinstance(partial, Mapping):
            return Err.from_exception(ValidationError("Invalid settings payload: expected an object"))

        settings = self.get_settings()
        settings.update(partial)
        try:
            self.store.set_json(SETTINGS_KEY, settings)
        except StoreError as e:
            logger.error(f"Error saving settings: {e}")
            return Err.from_exception(e)
        return Ok(settings)

    def close(self):
        self.store.close()
        self.seed_loader.session.close()
