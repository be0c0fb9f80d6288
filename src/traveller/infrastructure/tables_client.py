from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from traveller.domain.errors import FormatError
from traveller.domain.repositories import RuleTableRepository
from traveller.infrastructure.resilient_http import get_json_with_retry
from traveller.infrastructure.rule_tables import CAREERS_FILE, SPECIES_FILE, TABLES_FILE


logger = logging.getLogger(__name__)


class HttpRuleTableClient(RuleTableRepository):
    """Fetches the rule table documents from a static HTTP host.

    Each document is fetched on first use and kept for the lifetime of the client.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 10.0,
        retries: int = 2,
        backoff_s: float = 0.2,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self.retries = retries
        self.backoff_s = backoff_s
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout_s)
        self._documents: Dict[str, Dict[str, Any]] = {}

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HttpRuleTableClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _document(self, name: str, *, required: bool = True) -> Dict[str, Any]:
        if name in self._documents:
            return self._documents[name]
        try:
            payload = get_json_with_retry(
                self._client,
                name,
                headers={"Accept": "application/json"},
                retries=self.retries,
                backoff_seconds=self.backoff_s,
            )
        except httpx.HTTPStatusError as exc:
            if not required and exc.response.status_code == 404:
                logger.info("Optional rule table not published", extra={"document": name})
                payload = {}
            else:
                raise
        except ValueError as exc:
            raise FormatError(f"{name} is not valid JSON: {exc}") from exc
        if "results" in payload and len(payload) == 1:
            raise FormatError(f"{name} must contain a JSON object keyed by name")
        self._documents[name] = payload
        return payload

    def careers(self) -> Dict[str, Dict[str, Any]]:
        return {str(key).lower(): value for key, value in self._document(CAREERS_FILE).items()}

    def species(self) -> Dict[str, Dict[str, Any]]:
        return self._document(SPECIES_FILE)

    def tables(self) -> Dict[str, Any]:
        return self._document(TABLES_FILE, required=False)
