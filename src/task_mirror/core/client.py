import threading
from typing import Any

import requests

from ..config import Config
from ..errors import (
    PermanentRemoteError,
    RemoteNotFoundError,
    RemoteUnavailableError,
    TransientRemoteError,
)

CONNECT_TIMEOUT = 10


class NotionClient:
    """Blocking HTTP client for the page/property endpoints of the remote API.

    One ``requests.Session`` is kept per thread because the sync layer
    calls into the client from worker threads (see ``run_sync``).
    """

    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.base_url = f"{config.api_url.rstrip('/')}/v1"

    @property
    def session(self) -> requests.Session:
        """Return the current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update(
            {
                "Authorization": f"Bearer {self.config.api_token}",
                "Notion-Version": self.config.notion_version,
                "Content-Type": "application/json",
            }
        )
        return session

    def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        """
        Send a request and translate failures into ``RemoteError`` subclasses.

        Connection failures mean there is no connectivity at all; timeouts,
        429 and 5xx responses are transient; 404 is "not found"; other
        client errors are permanent.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = self._get_session().request(
                method,
                url,
                timeout=(CONNECT_TIMEOUT, self.config.request_timeout),
                **kwargs,
            )
        except requests.ConnectionError as exc:
            raise RemoteUnavailableError(
                f"Cannot reach {self.config.api_url}: {exc}"
            ) from exc
        except requests.Timeout as exc:
            raise TransientRemoteError(
                f"{method} {path} timed out: {exc}"
            ) from exc

        status = response.status_code
        if status < 400:
            return response.json() if response.content else {}

        message = self._error_message(response)
        if status == 404:
            raise RemoteNotFoundError(message, status_code=status)
        if status == 429 or status >= 500:
            raise TransientRemoteError(message, status_code=status)
        raise PermanentRemoteError(message, status_code=status)

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}: {response.text[:200]}"
        return (
            f"HTTP {response.status_code}: "
            f"{body.get('message') or body.get('code') or 'unknown error'}"
        )

    def validate_connection(self) -> str:
        """
        Validate the token by fetching the integration's bot user.
        Returns the bot name (or id) if successful.
        """
        me = self._request("GET", "users/me")
        return str(me.get("name") or me.get("id") or "")

    def retrieve_page(self, page_id: str) -> dict:
        """
        Get a page with all of its properties.
        """
        return self._request("GET", f"pages/{page_id}")

    def update_page_properties(
        self, page_id: str, properties: dict[str, Any]
    ) -> dict:
        """
        Update one or more properties on a page.
        """
        return self._request(
            "PATCH", f"pages/{page_id}", json={"properties": properties}
        )

    def query_database(self, database_id: str) -> list[dict]:
        """
        Return every page of a database, following pagination cursors.
        """
        pages: list[dict] = []
        body: dict[str, Any] = {"page_size": 100}
        while True:
            data = self._request(
                "POST", f"databases/{database_id}/query", json=body
            )
            pages.extend(data.get("results", []))
            if not data.get("has_more"):
                return pages
            body["start_cursor"] = data.get("next_cursor")


# ---------------------------------------------------------------------------
# Property value builders
# ---------------------------------------------------------------------------


def status_property(name: str) -> dict:
    return {"status": {"name": name}}


def checkbox_property(checked: bool) -> dict:
    return {"checkbox": checked}


def title_property(text: str) -> dict:
    return {"title": [{"type": "text", "text": {"content": text}}]}


def date_property(date: str | None) -> dict:
    """Null clears the date."""
    return {"date": {"start": date} if date else None}


def select_property(option_name: str | None) -> dict:
    """Null clears the selection."""
    return {"select": {"name": option_name} if option_name else None}


def relation_property(page_ids: list[str]) -> dict:
    """An empty list clears all relations."""
    return {"relation": [{"id": page_id} for page_id in page_ids]}


def url_property(url: str | None) -> dict:
    return {"url": url or None}
