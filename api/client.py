"""
Seed Loader - retrieval of the static seed documents
"""

import logging
import json
import time
from pathlib import Path
from typing import Any, List, Optional

import requests

from utils.logging_config import log_seed_request
from storage.cache import FreshnessCache

from .models import DataLayerError, ErrorKind, Record, is_record_list

logger = logging.getLogger(__name__)

USER_AGENT = 'elearning-data/1.0 (+https://example.com/elearning)'


class RetrievalError(DataLayerError):
    """Raised when a seed document is unreachable or malformed"""

    kind = ErrorKind.RETRIEVAL


class SeedLoader:
    """
    Fetches seed documents by logical path

    The base is either an ``http(s)://`` URL, fetched with a pooled
    requests session, or a local directory. Each document must be a JSON
    array of records. Results go through the freshness cache keyed by the
    logical path unless the caller asks for a fresh copy.
    """

    def __init__(self,
                 base_url: str = './data/seed',
                 cache: Optional[FreshnessCache] = None,
                 timeout: float = 10.0,
                 max_retries: int = 2,
                 retry_delay: float = 0.5):
        """
        Initialize the seed loader

        Args:
            base_url: URL prefix or directory holding the seed documents
            cache: Freshness cache shared with the repositories
            timeout: Per-request timeout in seconds
            max_retries: Retries for connection failures and timeouts
            retry_delay: Seconds between retries
        """
        self.base_url = base_url
        self.cache = cache
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.retrieval_count = 0

        self.session = requests.Session()
        self.session.headers.update({
            'User-Agent': USER_AGENT,
            'Accept': 'application/json'
        })

        logger.info(f"Initialized seed loader (base={base_url}, timeout={timeout}s)")

    @property
    def is_remote(self) -> bool:
        return self.base_url.startswith(('http://', 'https://'))

    @property
    def user_agent(self) -> str:
        return self.session.headers.get('User-Agent', USER_AGENT)

    def source_for(self, path: str) -> str:
        """Full URL or file path for a logical seed path"""
        if self.is_remote:
            return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        return str(Path(self.base_url) / path)

    def fetch(self, path: str, use_cache: bool = True) -> List[Record]:
        """
        Retrieve a seed document

        Args:
            path: Logical document path (e.g. 'mock-users.json')
            use_cache: Serve from / store into the freshness cache

        Returns:
            List of records

        Raises:
            RetrievalError: If the document is unreachable or not a JSON array
        """
        if use_cache and self.cache is not None:
            cached = self.cache.get(path)
            if cached is not None:
                logger.debug(f"Cache hit for seed document: {path}")
                return cached

        source = self.source_for(path)
        start_time = time.time()

        try:
            document = self._fetch_remote(source) if self.is_remote else self._fetch_local(source)
            records = self._validate(document, source)
        except RetrievalError as e:
            log_seed_request(logger, source, time.time() - start_time, error=str(e))
            raise

        self.retrieval_count += 1
        log_seed_request(logger, source, time.time() - start_time, record_count=len(records))

        if use_cache and self.cache is not None:
            self.cache.set(path, records)

        return records

    def _fetch_local(self, source: str) -> Any:
        file_path = Path(source)
        try:
            with file_path.open('r', encoding='utf-8') as f:
                return json.load(f)
        except FileNotFoundError as e:
            raise RetrievalError(f"Seed document not found: {source}") from e
        except OSError as e:
            raise RetrievalError(f"Cannot read seed document {source}: {e}") from e
        except json.JSONDecodeError as e:
            raise RetrievalError(f"Malformed seed document {source}: {e}") from e

    def _fetch_remote(self, url: str) -> Any:
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                response = self.session.get(url, timeout=self.timeout)
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                last_error = e
                if attempt < self.max_retries:
                    logger.warning(
                        f"Seed retrieval failed, retrying in {self.retry_delay}s "
                        f"(attempt {attempt + 1}/{self.max_retries + 1}): {e}"
                    )
                    time.sleep(self.retry_delay)
                continue
            except requests.exceptions.RequestException as e:
                raise RetrievalError(f"Network error fetching {url}: {e}") from e

            if not response.ok:
                raise RetrievalError(f"HTTP error! status: {response.status_code}")

            try:
                return response.json()
            except ValueError as e:
                raise RetrievalError(f"Malformed seed document {url}: {e}") from e

        raise RetrievalError(f"Seed document unreachable: {url} ({last_error})")

    @staticmethod
    def _validate(document: Any, source: str) -> List[Record]:
        if not isinstance(document, list):
            raise RetrievalError(f"Malformed seed document {source}: expected a JSON array")
        if not is_record_list(document):
            raise RetrievalError(f"Malformed seed document {source}: every element must be a JSON object")
        return document
