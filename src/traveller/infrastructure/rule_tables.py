from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from traveller.domain.errors import FormatError
from traveller.domain.repositories import RuleTableRepository


logger = logging.getLogger(__name__)

BUNDLED_DATA_DIR = Path(__file__).resolve().parent / "data"
CAREERS_FILE = "careers.json"
SPECIES_FILE = "species.json"
TABLES_FILE = "tables.json"


class InMemoryRuleTableRepository(RuleTableRepository):
    def __init__(
        self,
        careers: Optional[Mapping[str, Any]] = None,
        species: Optional[Mapping[str, Any]] = None,
        tables: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._careers: Dict[str, Dict[str, Any]] = {str(key).lower(): dict(value) for key, value in (careers or {}).items()}
        self._species: Dict[str, Dict[str, Any]] = {str(key): dict(value) for key, value in (species or {}).items()}
        self._tables: Dict[str, Any] = dict(tables or {})

    def careers(self) -> Dict[str, Dict[str, Any]]:
        return self._careers

    def species(self) -> Dict[str, Dict[str, Any]]:
        return self._species

    def tables(self) -> Dict[str, Any]:
        return self._tables


def _read_document(path: Path, *, required: bool) -> Dict[str, Any]:
    if not path.exists():
        if required:
            raise FileNotFoundError(f"Rule table file not found: {path}")
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise FormatError(f"{path.name} is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise FormatError(f"{path.name} must contain a JSON object keyed by name")
    return payload


class JsonRuleTableRepository(InMemoryRuleTableRepository):
    """Career, species and auxiliary tables read from JSON documents.

    With no ``data_dir`` the tables bundled with the package are used. Files are
    read once at construction.
    """

    def __init__(self, data_dir: str | Path | None = None) -> None:
        self.data_dir = Path(data_dir) if data_dir else BUNDLED_DATA_DIR
        careers = _read_document(self.data_dir / CAREERS_FILE, required=True)
        species = _read_document(self.data_dir / SPECIES_FILE, required=True)
        tables = _read_document(self.data_dir / TABLES_FILE, required=False)
        super().__init__(careers=careers, species=species, tables=tables)
        logger.debug(
            "Loaded rule tables",
            extra={"data_dir": str(self.data_dir), "careers": len(careers), "species": len(species)},
        )
