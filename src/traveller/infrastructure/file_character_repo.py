from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import List, Optional

from traveller.domain.errors import ImportFormatError
from traveller.domain.models.character import Character
from traveller.domain.repositories import CharacterRepository
from traveller.infrastructure.character_io import character_document, import_character, stamp_saved_at


logger = logging.getLogger(__name__)

_SAFE_KEY = re.compile(r"[^A-Za-z0-9_.-]+")


class JsonFileCharacterRepository(CharacterRepository):
    """One JSON document per save slot; writes go through a temp file and ``os.replace``."""

    def __init__(self, root_dir: str | Path) -> None:
        self.root_dir = Path(root_dir)
        self.root_dir.mkdir(parents=True, exist_ok=True)

    def _path_for_key(self, key: str) -> Path:
        slug = _SAFE_KEY.sub("_", str(key).strip()).strip("._")
        if not slug:
            raise ValueError(f"Invalid save key: {key!r}")
        return self.root_dir / f"{slug}.json"

    def load(self, key: str) -> Optional[Character]:
        path = self._path_for_key(key)
        if not path.exists():
            return None
        try:
            return import_character(path.read_text(encoding="utf-8"))
        except ImportFormatError:
            logger.warning("Unreadable character save", extra={"path": str(path)})
            raise

    def save(self, key: str, character: Character) -> None:
        path = self._path_for_key(key)
        envelope = character_document(stamp_saved_at(character))
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(json.dumps(envelope, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(tmp_path, path)

    def list_keys(self) -> List[str]:
        return sorted(path.stem for path in self.root_dir.glob("*.json"))

    def delete(self, key: str) -> bool:
        path = self._path_for_key(key)
        if not path.exists():
            return False
        path.unlink()
        return True
