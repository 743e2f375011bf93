from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from core.settings import SYNC
from utils.datetime_utils import ensure_utc, parse_rfc3339, to_rfc3339_utc, utc_now


def _parse_datetime(value: Optional[str]):
    return ensure_utc(parse_rfc3339(value)) if value else None


class SyncStateStorage:
    """JSON file holding sync watermarks so refreshes survive restarts."""

    def __init__(self, path: Path | str | None = None):
        self.path = Path(path or SYNC.state_path)

    # ------------------------------------------------------------------
    # generic helpers
    def _load(self) -> Dict[str, Any]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            return {}
        if isinstance(data, dict):
            return data
        return {}

    def _save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")

    # ------------------------------------------------------------------
    # Full sync helpers
    def set_last_full_sync(self, moment=None) -> None:
        data = self._load()
        data["lastFullSyncAt"] = to_rfc3339_utc(ensure_utc(moment) if moment else utc_now())
        self._save(data)

    def get_last_full_sync(self):
        return _parse_datetime(self._load().get("lastFullSyncAt"))

    # ------------------------------------------------------------------
    # Per-entity refresh helpers
    def set_entity_refresh(self, entity: str, moment=None) -> None:
        data = self._load()
        entities = data.setdefault("entities", {})
        if not isinstance(entities, dict):
            entities = data["entities"] = {}
        entities[entity] = to_rfc3339_utc(ensure_utc(moment) if moment else utc_now())
        self._save(data)

    def get_entity_refresh(self, entity: str):
        entities = self._load().get("entities", {})
        if isinstance(entities, dict):
            return _parse_datetime(entities.get(entity))
        return None

    def last_successful_sync(self):
        """Most recent full sync or refresh; the watermark for since-date pulls."""

        data = self._load()
        moments = [_parse_datetime(data.get("lastFullSyncAt")), _parse_datetime(data.get("lastRefreshAt"))]
        moments = [moment for moment in moments if moment is not None]
        return max(moments) if moments else None

    def set_last_refresh(self, moment=None) -> None:
        data = self._load()
        data["lastRefreshAt"] = to_rfc3339_utc(ensure_utc(moment) if moment else utc_now())
        self._save(data)

    # ------------------------------------------------------------------
    # Scope helpers
    def set_scope(self, *, company_id: Optional[str], user_id: Optional[str]) -> None:
        data = self._load()
        data["companyId"] = company_id
        data["userId"] = user_id
        self._save(data)

    def get_scope(self) -> Dict[str, Optional[str]]:
        data = self._load()
        return {"company_id": data.get("companyId"), "user_id": data.get("userId")}

    # ------------------------------------------------------------------
    def clear_all(self) -> None:
        if self.path.exists():
            self.path.unlink()


__all__ = ["SyncStateStorage"]
