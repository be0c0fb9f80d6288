import os
import sys
import tempfile
from pathlib import Path
import unittest
from unittest import mock

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from traveller.bootstrap import build_character_repository, build_rule_tables, create_chargen_services
from traveller.infrastructure.db.sql_character_repo import SqlCharacterRepository
from traveller.infrastructure.file_character_repo import JsonFileCharacterRepository
from traveller.infrastructure.inmemory.inmemory_character_repo import InMemoryCharacterRepository
from traveller.infrastructure.rule_tables import JsonRuleTableRepository
from traveller.infrastructure.tables_client import HttpRuleTableClient


_CLEAN_ENV = {
    "TRAVELLER_TABLES_URL": "",
    "TRAVELLER_DATA_DIR": "",
    "TRAVELLER_DATABASE_URL": "",
    "TRAVELLER_SAVE_DIR": "",
}


class BootstrapSelectionTests(unittest.TestCase):
    def test_defaults_are_bundled_tables_and_memory_saves(self) -> None:
        with mock.patch.dict(os.environ, _CLEAN_ENV):
            self.assertIsInstance(build_rule_tables(), JsonRuleTableRepository)
            self.assertIsInstance(build_character_repository(), InMemoryCharacterRepository)

    def test_tables_url_selects_http_client(self) -> None:
        env = dict(_CLEAN_ENV, TRAVELLER_TABLES_URL="https://tables.invalid/v1", TRAVELLER_HTTP_RETRIES="5")
        with mock.patch.dict(os.environ, env):
            client = build_rule_tables()
        self.addCleanup(client.close)
        self.assertIsInstance(client, HttpRuleTableClient)
        self.assertEqual(5, client.retries)
        self.assertEqual("https://tables.invalid/v1/", client.base_url)

    def test_save_backends(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with mock.patch.dict(os.environ, dict(_CLEAN_ENV, TRAVELLER_SAVE_DIR=str(Path(tmp) / "saves"))):
                self.assertIsInstance(build_character_repository(), JsonFileCharacterRepository)
            url = f"sqlite:///{Path(tmp) / 'saves.db'}"
            with mock.patch.dict(os.environ, dict(_CLEAN_ENV, TRAVELLER_DATABASE_URL=url)):
                repo = build_character_repository()
            self.assertIsInstance(repo, SqlCharacterRepository)
            repo.SessionLocal.kw["bind"].dispose()

    def test_chain_depth_comes_from_environment(self) -> None:
        with mock.patch.dict(os.environ, dict(_CLEAN_ENV, TRAVELLER_MAX_CHAIN_DEPTH="3")):
            services = create_chargen_services(seed=1)
        self.assertEqual(3, services.interpreter.max_depth)
        self.assertIs(services.careers.interpreter, services.interpreter)
        self.assertIn("life_events", services.rule_tables.tables())


if __name__ == "__main__":
    unittest.main()
