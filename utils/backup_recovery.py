"""
Backup and Restore for the E-Learning data layer

Exports every repository into one portable document and restores from
one, keeping a safety snapshot of the previous state inside the store.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from api.models import (
    DataLayerError,
    Err,
    InvalidFormatError,
    NotFoundError,
    Ok,
    Result,
    format_timestamp,
    is_record_list,
)
from storage.database import StoreError

logger = logging.getLogger(__name__)

BACKUP_FORMAT_VERSION = '1.0.0'
BACKUP_KEY_PREFIX = 'backup_'
MANDATORY_SECTIONS = ('users', 'courses', 'quizzes')
SNAPSHOT_SECTIONS = ('users', 'courses', 'quizzes', 'logs')
SETTINGS_KEY = 'appSettings'


class BackupManager:
    """
    Whole-store export/import

    Features:
    - Single-document export with format version and timestamp
    - Validated import that never touches data on invalid input
    - Timestamped, non-overwriting safety snapshots before each import
    - Manual restore from a safety snapshot
    """

    def __init__(self, context):
        """
        Args:
            context: DataContext providing the store and repositories
        """
        self.context = context
        self.store = context.store

    def _read(self, key: str, default: Any) -> Any:
        try:
            return self.store.get_json(key, default=default)
        except StoreError as e:
            logger.error(f"Error reading {key} for export: {e}")
            return default

    def export_data(self) -> Dict[str, Any]:
        """
        Assemble the backup document from the current store content

        Returns:
            {users, courses, quizzes, logs, settings, exportDate, version}
        """
        document = {section: self._read(section, []) for section in SNAPSHOT_SECTIONS}
        document['settings'] = self._read(SETTINGS_KEY, {})
        document['exportDate'] = format_timestamp(
            datetime.fromtimestamp(self.context.clock(), tz=timezone.utc)
        )
        document['version'] = BACKUP_FORMAT_VERSION

        logger.info(
            "Exported backup document ("
            + ", ".join(f"{len(document[s])} {s}" for s in SNAPSHOT_SECTIONS)
            + ")"
        )
        return document

    def write_export(self, directory: Union[str, Path] = '.') -> Path:
        """Write the backup document as elearning-backup-YYYY-MM-DD.json"""
        document = self.export_data()
        out_dir = Path(directory)
        out_dir.mkdir(parents=True, exist_ok=True)

        file_path = out_dir / f"elearning-backup-{document['exportDate'][:10]}.json"
        file_path.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding='utf-8')

        logger.info(f"Backup written to {file_path}")
        return file_path

    @staticmethod
    def _parse(document: Union[Dict[str, Any], str, bytes]) -> Dict[str, Any]:
        if isinstance(document, (str, bytes)):
            try:
                document = json.loads(document)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise InvalidFormatError(f"Invalid backup file format: {e}") from e

        if not isinstance(document, dict):
            raise InvalidFormatError("Invalid backup file format: expected an object")

        missing = [section for section in MANDATORY_SECTIONS if document.get(section) is None]
        if missing:
            raise InvalidFormatError(f"Invalid backup file format: missing {', '.join(missing)}")

        BackupManager._check_sections(document, InvalidFormatError, "Invalid backup file format")
        return document

    @staticmethod
    def _check_sections(document: Dict[str, Any], error_type, prefix: str):
        """Every present section must be a list of records and settings an object"""
        malformed = [
            section for section in SNAPSHOT_SECTIONS
            if document.get(section) is not None and not is_record_list(document[section])
        ]
        if malformed:
            raise error_type(f"{prefix}: {', '.join(malformed)} must be a list of objects")

        settings = document.get('settings')
        if settings is not None and not isinstance(settings, dict):
            raise error_type(f"{prefix}: settings must be an object")

    def _new_backup_key(self) -> str:
        millis = int(self.context.clock() * 1000)
        while self.store.has(f"{BACKUP_KEY_PREFIX}{millis}"):
            millis += 1
        return f"{BACKUP_KEY_PREFIX}{millis}"

    def _apply(self, document: Dict[str, Any]):
        for section in SNAPSHOT_SECTIONS:
            if section in document and document[section] is not None:
                self.context.repository(section).replace(document[section])
        if document.get('settings') is not None:
            self.store.set_json(SETTINGS_KEY, document['settings'])

    def import_data(self, document: Union[Dict[str, Any], str, bytes]) -> Result:
        """
        Replace the store content with a backup document

        Args:
            document: Parsed document, JSON text or raw bytes

        Returns:
            Ok(safety snapshot key) or Err(InvalidFormat / StoreError)
        """
        try:
            data = self._parse(document)

            backup_key = self._new_backup_key()
            self.store.set_json(backup_key, {
                section: self._read(section, []) for section in SNAPSHOT_SECTIONS
            })
            logger.info(f"Saved pre-import snapshot as {backup_key}")

            self._apply(data)

        except DataLayerError as e:
            logger.error(f"Error importing data: {e}")
            return Err.from_exception(e)

        logger.info("Import completed")
        return Ok(backup_key)

    def list_backups(self) -> List[str]:
        """Safety snapshot keys, oldest first"""
        try:
            keys = [key for key in self.store.keys() if key.startswith(BACKUP_KEY_PREFIX)]
        except StoreError as e:
            logger.error(f"Error listing backups: {e}")
            return []

        def _millis(key: str) -> int:
            suffix = key[len(BACKUP_KEY_PREFIX):]
            return int(suffix) if suffix.isdigit() else 0

        return sorted(keys, key=_millis)

    def restore_backup(self, backup_key: str) -> Result:
        """
        Restore the repositories from a safety snapshot

        The snapshot itself is kept so it can be restored again.
        """
        try:
            snapshot: Optional[Dict[str, Any]] = self.store.get_json(backup_key, default=None)
            if not isinstance(snapshot, dict):
                raise NotFoundError(f"Backup not found: {backup_key}")

            self._check_sections(snapshot, StoreError, f"Corrupt backup {backup_key}")
            self._apply(snapshot)

        except DataLayerError as e:
            logger.error(f"Error restoring {backup_key}: {e}")
            return Err.from_exception(e)

        logger.info(f"Restored data from {backup_key}")
        return Ok(backup_key)
