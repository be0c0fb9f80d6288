import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def disable_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("time.sleep", lambda *_args, **_kwargs: None)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "TRAVELLER_TABLES_URL",
        "TRAVELLER_DATA_DIR",
        "TRAVELLER_DATABASE_URL",
        "TRAVELLER_SAVE_DIR",
        "TRAVELLER_MAX_CHAIN_DEPTH",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def block_external_http(monkeypatch: pytest.MonkeyPatch) -> None:
    import httpx

    def _deny_external_http(self, request, *args, **kwargs):
        raise RuntimeError(f"External HTTP disabled during tests: {request.url}")

    monkeypatch.setattr(httpx.HTTPTransport, "handle_request", _deny_external_http)
