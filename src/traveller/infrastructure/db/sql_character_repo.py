from __future__ import annotations

import json
import logging
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from traveller.domain.models.character import Character
from traveller.domain.repositories import CharacterRepository
from traveller.infrastructure.character_io import character_document, import_character, stamp_saved_at
from .connection import create_session_factory


logger = logging.getLogger(__name__)


class SqlCharacterRepository(CharacterRepository):
    """Character saves stored as JSON documents in a ``character_save`` table."""

    def __init__(self, session_factory: sessionmaker | None = None, *, url: str | None = None) -> None:
        self.SessionLocal = session_factory or create_session_factory(url)
        self.ensure_schema()

    def ensure_schema(self) -> None:
        with self.SessionLocal.begin() as session:
            session.execute(
                text(
                    """
                    CREATE TABLE IF NOT EXISTS character_save (
                        save_key VARCHAR(120) NOT NULL PRIMARY KEY,
                        payload TEXT NOT NULL,
                        saved_at VARCHAR(40) NOT NULL
                    )
                    """
                )
            )

    def load(self, key: str) -> Optional[Character]:
        with self.SessionLocal() as session:
            row = session.execute(
                text("SELECT payload FROM character_save WHERE save_key = :key"),
                {"key": str(key)},
            ).first()
        if row is None:
            return None
        return import_character(row.payload)

    def save(self, key: str, character: Character) -> None:
        stamped = stamp_saved_at(character)
        params = {
            "key": str(key),
            "payload": json.dumps(character_document(stamped), ensure_ascii=False),
            "saved_at": stamped.saved_at,
        }
        with self.SessionLocal.begin() as session:
            dialect = session.bind.dialect.name if session.bind is not None else "sqlite"
            if dialect == "mysql":
                session.execute(
                    text(
                        """
                        INSERT INTO character_save (save_key, payload, saved_at)
                        VALUES (:key, :payload, :saved_at)
                        ON DUPLICATE KEY UPDATE
                            payload = VALUES(payload),
                            saved_at = VALUES(saved_at)
                        """
                    ),
                    params,
                )
            elif dialect in {"sqlite", "postgresql"}:
                session.execute(
                    text(
                        """
                        INSERT INTO character_save (save_key, payload, saved_at)
                        VALUES (:key, :payload, :saved_at)
                        ON CONFLICT(save_key) DO UPDATE SET
                            payload = excluded.payload,
                            saved_at = excluded.saved_at
                        """
                    ),
                    params,
                )
            else:
                session.execute(text("DELETE FROM character_save WHERE save_key = :key"), {"key": params["key"]})
                session.execute(
                    text("INSERT INTO character_save (save_key, payload, saved_at) VALUES (:key, :payload, :saved_at)"),
                    params,
                )
        logger.debug("Saved character", extra={"save_key": params["key"], "dialect": dialect})

    def list_keys(self) -> List[str]:
        with self.SessionLocal() as session:
            rows = session.execute(text("SELECT save_key FROM character_save ORDER BY save_key")).all()
        return [str(row.save_key) for row in rows]

    def delete(self, key: str) -> bool:
        with self.SessionLocal.begin() as session:
            result = session.execute(text("DELETE FROM character_save WHERE save_key = :key"), {"key": str(key)})
        return bool(result.rowcount)
