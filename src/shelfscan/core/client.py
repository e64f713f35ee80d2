"""HTTP client for the remote ISBN lookup and catalog save endpoints."""

from __future__ import annotations

import json
import os

import httpx
import structlog

from .errors import LookupFailure, SaveFailure

log = structlog.get_logger()

DEFAULT_CATALOG_API_URL = "https://testocrtest.pythonanywhere.com"
LOOKUP_PATH = "/receive_isbn"
SAVE_PATH = "/save_title"


class CatalogClient:
    """Talks to the catalog service.

    Both calls are a single POST with a JSON body. Any transport error,
    non-2xx status or undecodable body raises the matching failure; callers
    decide how to degrade. No client-side timeout: failures surface through
    the transport, not a deadline.
    """

    def __init__(
        self,
        base_url: str | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        if base_url is None:
            base_url = os.environ.get("CATALOG_API_URL", DEFAULT_CATALOG_API_URL)
        self.base_url = base_url.rstrip("/")
        self._http = http or httpx.AsyncClient(timeout=None)
        self._owns_http = http is None

    async def _post_json(self, path: str, payload: dict) -> object:
        resp = await self._http.post(
            f"{self.base_url}{path}",
            json=payload,
            headers={"Content-Type": "application/json"},
        )
        resp.raise_for_status()
        return resp.json()

    async def lookup(self, isbn: str) -> dict:
        """POST the ISBN and return {"title": ..., "author": ...}.

        Missing keys come back as empty strings.
        """
        try:
            data = await self._post_json(LOOKUP_PATH, {"isbn": isbn})
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            log.debug("lookup_request_failed", isbn=isbn, error=str(e))
            raise LookupFailure(str(e)) from e

        if not isinstance(data, dict):
            log.debug("lookup_malformed_body", isbn=isbn, body_type=type(data).__name__)
            raise LookupFailure("Malformed lookup response")

        title = data.get("title") or ""
        author = data.get("author") or ""
        log.debug("lookup_response", isbn=isbn, has_title=bool(title), has_author=bool(author))
        return {
            "title": title if isinstance(title, str) else "",
            "author": author if isinstance(author, str) else "",
        }

    async def save(self, payload: dict) -> object:
        """POST a catalog record. The acknowledgement body is only parsed."""
        try:
            ack = await self._post_json(SAVE_PATH, payload)
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            log.warning("save_request_failed", isbn=payload.get("isbn"), error=str(e))
            raise SaveFailure(str(e)) from e
        log.debug("save_acknowledged", isbn=payload.get("isbn"))
        return ack

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
