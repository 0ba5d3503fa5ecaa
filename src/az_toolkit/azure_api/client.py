"""Thin ARM REST client bound to one subscription.

This is the "manager client" every resource module talks to.  It knows
nothing about resource kinds: callers pass ARM paths (``/subscriptions/…``)
or absolute URLs plus an ``api-version``.  Every request is attempted
exactly once; long-running writes are awaited by polling, never retried.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from urllib.parse import urlencode

import requests
from azure.core.credentials import TokenCredential

from az_toolkit.azure_api._auth import _get_headers
from az_toolkit.azure_api._pagination import iter_pages
from az_toolkit.config import ToolkitSettings
from az_toolkit.config import settings as default_settings
from az_toolkit.exceptions import AzureApiError

logger = logging.getLogger(__name__)

_TERMINAL_STATES = {"succeeded", "failed", "canceled", "cancelled"}
_QUERY_SAFE = "$/:',"


def raise_for_response(resp: requests.Response) -> None:
    """Raise :class:`AzureApiError` for any non-2xx response."""
    if resp.ok:
        return
    code: str | None = None
    message = resp.reason or f"HTTP {resp.status_code}"
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error") or {}
        if isinstance(error, dict):
            code = error.get("code") or code
            message = error.get("message") or message
    raise AzureApiError(resp.status_code, message, code=code, url=resp.url)


class ArmClient:
    """Subscription-scoped ARM client."""

    def __init__(
        self,
        subscription_id: str,
        tenant_id: str | None = None,
        credential: TokenCredential | None = None,
        settings: ToolkitSettings | None = None,
    ) -> None:
        self.subscription_id = subscription_id
        self.tenant_id = tenant_id
        self.credential = credential
        self.settings = settings or default_settings
        self.endpoint = self.settings.management_endpoint

    def __repr__(self) -> str:
        return f"ArmClient(subscription_id={self.subscription_id!r})"

    # ------------------------------------------------------------------
    # URL helpers
    # ------------------------------------------------------------------

    @property
    def subscription_path(self) -> str:
        return f"/subscriptions/{self.subscription_id}"

    def url(self, path: str, api_version: str | None = None, **query: str) -> str:
        """Build an absolute URL for *path* with the query parameters appended."""
        base = path if path.startswith("http") else f"{self.endpoint}{path}"
        params = {k: v for k, v in query.items() if v is not None}
        if api_version:
            params = {"api-version": api_version, **params}
        if not params:
            return base
        sep = "&" if "?" in base else "?"
        return f"{base}{sep}{urlencode(params, safe=_QUERY_SAFE)}"

    def headers(self) -> dict[str, str]:
        return _get_headers(self.tenant_id, cred=self.credential)

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    def request(
        self,
        method: str,
        path: str,
        api_version: str | None = None,
        body: dict | None = None,
        **query: str,
    ) -> requests.Response:
        url = self.url(path, api_version, **query)
        logger.debug("%s %s", method, url)
        return requests.request(
            method,
            url,
            headers=self.headers(),
            json=body,
            timeout=self.settings.request_timeout,
        )

    def get(self, path: str, api_version: str | None = None, **query: str) -> dict | None:
        """GET a single resource.  Returns ``None`` on HTTP 404."""
        resp = self.request("GET", path, api_version, **query)
        if resp.status_code == 404:
            return None
        raise_for_response(resp)
        return resp.json() if resp.content else {}

    def iter_pages(self, path: str, api_version: str | None = None, **query: str) -> Iterator[list[dict]]:
        """Lazily yield pages of an ARM list endpoint.

        An HTTP 404 on the first page (missing parent) yields nothing.
        """

        def _fetch(url: str) -> dict:
            resp = requests.request(
                "GET", url, headers=self.headers(), timeout=self.settings.request_timeout
            )
            if resp.status_code == 404:
                return {}
            raise_for_response(resp)
            return resp.json()

        return iter_pages(self.url(path, api_version, **query), _fetch)

    def put(self, path: str, api_version: str, body: dict) -> dict:
        resp = self.request("PUT", path, api_version, body=body)
        return self._complete(resp, path, api_version)

    def patch(self, path: str, api_version: str, body: dict) -> dict:
        resp = self.request("PATCH", path, api_version, body=body)
        return self._complete(resp, path, api_version)

    def post(self, path: str, api_version: str | None = None, body: dict | None = None) -> dict:
        resp = self.request("POST", path, api_version, body=body)
        raise_for_response(resp)
        if resp.status_code == 202:
            self._wait(resp)
            return {}
        return resp.json() if resp.content else {}

    def delete(self, path: str, api_version: str) -> None:
        """DELETE a resource.  A 404 means it is already gone."""
        resp = self.request("DELETE", path, api_version)
        if resp.status_code == 404:
            return
        raise_for_response(resp)
        if resp.status_code == 202:
            self._wait(resp)

    # ------------------------------------------------------------------
    # Long-running operations
    # ------------------------------------------------------------------

    def _complete(self, resp: requests.Response, path: str, api_version: str) -> dict:
        raise_for_response(resp)
        body = resp.json() if resp.content else {}
        if resp.status_code in (201, 202) and self._is_pending(resp, body):
            self._wait(resp)
            return self.get(path, api_version) or {}
        return body

    @staticmethod
    def _is_pending(resp: requests.Response, body: dict) -> bool:
        if resp.headers.get("Azure-AsyncOperation") or resp.headers.get("Location"):
            return True
        state = (body.get("properties") or {}).get("provisioningState", "")
        return bool(state) and state.lower() not in _TERMINAL_STATES

    def _wait(self, resp: requests.Response) -> None:
        """Poll a long-running operation until it reaches a terminal state."""
        monitor = resp.headers.get("Azure-AsyncOperation") or resp.headers.get("Location")
        if not monitor:
            return
        deadline = time.monotonic() + self.settings.operation_timeout
        delay = _retry_after(resp, self.settings.poll_interval)
        while True:
            if time.monotonic() > deadline:
                raise AzureApiError(
                    408, f"Timed out waiting for operation {monitor}", code="OperationTimeout"
                )
            time.sleep(delay)
            poll = requests.request(
                "GET", monitor, headers=self.headers(), timeout=self.settings.request_timeout
            )
            raise_for_response(poll)
            if poll.status_code == 202:
                delay = _retry_after(poll, self.settings.poll_interval)
                continue
            status = (poll.json() if poll.content else {}).get("status", "Succeeded")
            if status.lower() not in _TERMINAL_STATES:
                delay = _retry_after(poll, self.settings.poll_interval)
                continue
            if status.lower() != "succeeded":
                error = (poll.json() or {}).get("error") or {}
                raise AzureApiError(
                    poll.status_code,
                    error.get("message") or f"Operation finished with status {status}",
                    code=error.get("code") or status,
                    url=monitor,
                )
            return


def _retry_after(resp: requests.Response, default: float) -> float:
    try:
        return float(resp.headers.get("Retry-After", default))
    except (TypeError, ValueError):
        return default
