"""
Persisted local catalog state: the edit overlay and the orphan list.

File format (JSON):
    {
      "version": 1,
      "overrides": {"<video id>": {"title": "...", "tags": [...]}},
      "orphans": [{"video_id": "...", "key": "...", ...}]
    }

Without a path the state lives only in memory.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.exceptions import ConfigurationError
from ..utils.helpers import read_json, write_json_atomic
from ..utils.logger import get_logger
from .models import OrphanRecord


STATE_VERSION = 1


class CatalogState:
    """Overlay of user edits keyed by video id, plus orphaned assets"""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path).expanduser() if path else None
        self.logger = get_logger(__name__)
        self._overrides: Dict[str, Dict[str, Any]] = {}
        self._orphans: Dict[str, OrphanRecord] = {}
        self._orphan_keys: Dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None:
            return
        try:
            data = read_json(self.path, default={}) or {}
        except ValueError as e:
            raise ConfigurationError(
                f"Catalog state file is corrupted: {self.path}",
                details={'path': str(self.path), 'original_error': str(e)},
            ) from e

        self._overrides = {vid: dict(fields) for vid, fields in data.get('overrides', {}).items()}
        for entry in data.get('orphans', []):
            self.add_orphan(OrphanRecord.from_dict(entry))

        self.logger.debug(
            f"Loaded catalog state: {len(self._overrides)} overrides, {len(self._orphans)} orphans"
        )

    def save(self) -> None:
        if self.path is None:
            return
        write_json_atomic(self.path, {
            'version': STATE_VERSION,
            'overrides': self._overrides,
            'orphans': [record.to_dict() for record in self._orphans.values()],
        })

    # Overrides

    def override_for(self, video_id: str) -> Dict[str, Any]:
        return dict(self._overrides.get(video_id, {}))

    def merge_override(self, video_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        merged = {**self._overrides.get(video_id, {}), **fields}
        self._overrides[video_id] = merged
        return dict(merged)

    def drop_override(self, video_id: str) -> bool:
        return self._overrides.pop(video_id, None) is not None

    @property
    def overrides(self) -> Dict[str, Dict[str, Any]]:
        return {vid: dict(fields) for vid, fields in self._overrides.items()}

    # Orphans

    def add_orphan(self, record: OrphanRecord) -> None:
        self.remove_orphan(record.video_id)
        self._orphans[record.video_id] = record
        self._orphan_keys[record.key] = record.video_id

    def remove_orphan(self, video_id: str) -> Optional[OrphanRecord]:
        record = self._orphans.pop(video_id, None)
        if record is not None and self._orphan_keys.get(record.key) == video_id:
            del self._orphan_keys[record.key]
        return record

    def orphan(self, video_id: str) -> Optional[OrphanRecord]:
        return self._orphans.get(video_id)

    def orphans(self) -> List[OrphanRecord]:
        return sorted(self._orphans.values(), key=lambda r: r.orphaned_at)

    def is_orphaned_key(self, key: str) -> bool:
        return key in self._orphan_keys
