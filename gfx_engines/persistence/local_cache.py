"""Durable per-project local cache used as load fallback and save backup."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

from pydantic import ValidationError as PydanticValidationError

from gfx_engines.config.runtime_config import get_local_cache_dir
from gfx_engines.persistence.models import LocalProjectBlob

logger = logging.getLogger(__name__)


class ProjectCache(Protocol):
    def get(self, project_id: str) -> Optional[LocalProjectBlob]:
        ...

    def set(self, project_id: str, blob: LocalProjectBlob) -> None:
        ...

    def remove(self, project_id: str) -> None:
        ...


class InMemoryProjectCache:
    """Keeps serialized blobs so reads exercise the same validation as disk."""

    def __init__(self) -> None:
        self._blobs: Dict[str, str] = {}

    def get(self, project_id: str) -> Optional[LocalProjectBlob]:
        raw = self._blobs.get(project_id)
        if raw is None:
            return None
        try:
            return LocalProjectBlob.model_validate_json(raw)
        except PydanticValidationError:
            logger.warning("Cleared corrupted cached project %s", project_id)
            self.remove(project_id)
            return None

    def set(self, project_id: str, blob: LocalProjectBlob) -> None:
        self._blobs[project_id] = blob.model_dump_json()

    def set_raw(self, project_id: str, raw: str) -> None:
        self._blobs[project_id] = raw

    def remove(self, project_id: str) -> None:
        self._blobs.pop(project_id, None)


class FileSystemProjectCache:
    """One JSON file per project.

    Path structure:
      {base_dir}/{project_id}.json
    """

    def __init__(self, base_dir: Optional[Union[str, Path]] = None) -> None:
        self._base_dir = Path(base_dir or get_local_cache_dir())
        self._base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, project_id: str) -> Path:
        safe_name = project_id.replace("/", "_").replace("..", "_")
        return self._base_dir / f"{safe_name}.json"

    def get(self, project_id: str) -> Optional[LocalProjectBlob]:
        path = self._path(project_id)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return LocalProjectBlob.model_validate(data)
        except (UnicodeDecodeError, json.JSONDecodeError, PydanticValidationError) as exc:
            logger.warning("Cleared corrupted cached project %s: %s", project_id, exc)
            self.remove(project_id)
            return None
        except OSError as exc:
            logger.error("Failed to read cached project %s: %s", project_id, exc)
            return None

    def set(self, project_id: str, blob: LocalProjectBlob) -> None:
        path = self._path(project_id)
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(blob.model_dump_json())
        tmp.replace(path)

    def remove(self, project_id: str) -> None:
        try:
            self._path(project_id).unlink()
        except FileNotFoundError:
            pass
