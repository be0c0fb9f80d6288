import json
import sys
import tempfile
from dataclasses import replace
from datetime import datetime
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from traveller.domain.errors import ImportFormatError
from traveller.domain.models.character import CareerStint, Character
from traveller.infrastructure.db.connection import create_session_factory
from traveller.infrastructure.db.sql_character_repo import SqlCharacterRepository
from traveller.infrastructure.file_character_repo import JsonFileCharacterRepository
from traveller.infrastructure.inmemory.inmemory_character_repo import InMemoryCharacterRepository


def _scout() -> Character:
    return Character(
        name="Yara",
        age=26,
        attributes={"STR": 6, "DEX": 10, "END": 7, "INT": 9, "EDU": 8, "SOC": 4},
        skills={"Pilot": 2, "Astrogation": 1},
        career_history=[CareerStint(career="Scout", assignment="Courier", terms=2, start_age=18)],
        contacts=["Sage Miller (Informant)"],
        money=4000,
    )


class _RepositoryContract:
    def make_repository(self):
        raise NotImplementedError

    def setUp(self) -> None:
        self.repo = self.make_repository()

    def test_missing_key_loads_none(self) -> None:
        self.assertIsNone(self.repo.load("nobody"))

    def test_save_then_load(self) -> None:
        self.repo.save("yara", _scout())
        loaded = self.repo.load("yara")
        self.assertEqual(_scout(), replace(loaded, saved_at=None))

    def test_save_stamps_iso_timestamp(self) -> None:
        scout = _scout()
        self.repo.save("yara", scout)
        stamp = self.repo.load("yara").saved_at
        self.assertIsInstance(stamp, str)
        self.assertIsNotNone(datetime.fromisoformat(stamp).tzinfo)
        self.assertIsNone(scout.saved_at)

    def test_save_overwrites(self) -> None:
        self.repo.save("yara", _scout())
        richer = _scout()
        richer.money = 90000
        self.repo.save("yara", richer)
        self.assertEqual(90000, self.repo.load("yara").money)
        self.assertEqual(["yara"], self.repo.list_keys())

    def test_loaded_character_is_a_copy(self) -> None:
        original = _scout()
        self.repo.save("yara", original)
        original.skills["Pilot"] = 5
        loaded = self.repo.load("yara")
        loaded.money = 1
        self.assertEqual(2, self.repo.load("yara").skills["Pilot"])
        self.assertEqual(4000, self.repo.load("yara").money)

    def test_list_and_delete(self) -> None:
        self.repo.save("b-side", _scout())
        self.repo.save("a-side", _scout())
        self.assertEqual(["a-side", "b-side"], self.repo.list_keys())
        self.assertTrue(self.repo.delete("a-side"))
        self.assertFalse(self.repo.delete("a-side"))
        self.assertEqual(["b-side"], self.repo.list_keys())


class InMemoryCharacterRepositoryTests(_RepositoryContract, unittest.TestCase):
    def make_repository(self):
        return InMemoryCharacterRepository()


class JsonFileCharacterRepositoryTests(_RepositoryContract, unittest.TestCase):
    def make_repository(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        return JsonFileCharacterRepository(Path(self._tmp.name) / "saves")

    def test_saved_file_is_an_export_envelope(self) -> None:
        self.repo.save("yara", _scout())
        document = json.loads((Path(self._tmp.name) / "saves" / "yara.json").read_text(encoding="utf-8"))
        self.assertEqual("traveller-character", document["format"])
        self.assertNotIn("saved_at", document)
        self.assertIn("saved_at", document["character"])
        self.assertFalse(list((Path(self._tmp.name) / "saves").glob("*.tmp")))

    def test_keys_are_slugged(self) -> None:
        self.repo.save("../Yara Vance", _scout())
        self.assertEqual(["Yara_Vance"], self.repo.list_keys())
        self.assertEqual("Yara", self.repo.load("../Yara Vance").name)
        with self.assertRaises(ValueError):
            self.repo.save("...", _scout())

    def test_corrupt_file_raises_import_error(self) -> None:
        (Path(self._tmp.name) / "saves" / "broken.json").write_text("{oops", encoding="utf-8")
        with self.assertLogs("traveller.infrastructure.file_character_repo", level="WARNING"):
            with self.assertRaises(ImportFormatError):
                self.repo.load("broken")


class SqlCharacterRepositoryTests(_RepositoryContract, unittest.TestCase):
    def make_repository(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        factory = create_session_factory(f"sqlite:///{Path(self._tmp.name) / 'saves.db'}")
        self.addCleanup(factory.kw["bind"].dispose)
        return SqlCharacterRepository(factory)

    def test_schema_creation_is_idempotent(self) -> None:
        self.repo.save("yara", _scout())
        again = SqlCharacterRepository(self.repo.SessionLocal)
        self.assertEqual(["yara"], again.list_keys())


if __name__ == "__main__":
    unittest.main()
