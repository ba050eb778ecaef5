"""Client for the CKAN REST API (v2) of a data portal.

Only the four read endpoints the watcher needs are wrapped:

- ``rest/dataset``: ids of all datasets
- ``rest/dataset/{id}``: one dataset's metadata document
- ``rest/revision?since_time=...``: revision ids since a point in time
- ``rest/revision/{id}``: the packages touched by one revision

Connection failures are retried; HTTP errors raise PortalError with the
status code. The portal answers 403 for datasets that were deleted.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from typing import Any
from urllib.parse import quote, urljoin

import requests

from ogdat_cli.errors import PortalError
from ogdat_cli.schedule import Scheduler, WorkState, wait

logger = logging.getLogger(__name__)

DEFAULT_PORTAL_URL = "http://www.data.gv.at/katalog/api/2/"
DEFAULT_RETRIES = 3
DEFAULT_TIMEOUT = 30.0

# Seconds between liveness checks while revisions are fetched
_REVISION_POLL = 5.0


class Portal:
    """Read access to one CKAN portal."""

    def __init__(
        self,
        base_url: str = DEFAULT_PORTAL_URL,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
    ) -> None:
        # urljoin drops the last path segment unless the base ends with "/"
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._session = session or requests.Session()
        self._timeout = timeout
        self._retries = max(retries, 1)

    def _url(self, path: str) -> str:
        return urljoin(self.base_url, path)

    def _get(self, path: str, params: dict[str, str] | None = None) -> bytes:
        url = self._url(path)
        last_error: requests.RequestException | None = None
        for attempt in range(1, self._retries + 1):
            try:
                response = self._session.get(url, params=params, timeout=self._timeout)
                break
            except requests.RequestException as exc:
                last_error = exc
                logger.debug("GET %s failed (attempt %d/%d): %s", url, attempt, self._retries, exc)
        else:
            raise PortalError(
                f"Portal request failed after {self._retries} attempts: {last_error}",
                url=url,
            ) from last_error

        if not 200 <= response.status_code < 300:
            raise PortalError(
                f"Portal answered {response.status_code} for {url}",
                url=url,
                status_code=response.status_code,
            )
        return response.content

    def _get_json(self, path: str, params: dict[str, str] | None = None) -> Any:
        data = self._get(path, params)
        try:
            return json.loads(data)
        except ValueError as err:
            raise PortalError(f"Portal returned invalid JSON: {err}", url=self._url(path)) from err

    def list_all_ids(self) -> list[str]:
        """Return the ids of all datasets on the portal."""
        ids = self._get_json("rest/dataset")
        if not isinstance(ids, list):
            raise PortalError("Expected a list of dataset ids", url=self._url("rest/dataset"))
        return [str(i) for i in ids]

    def fetch_document(self, ckan_id: str) -> bytes:
        """Return the raw metadata document of one dataset.

        Raises:
            PortalError: On failure; ``is_deleted`` is True for 403.
        """
        return self._get("rest/dataset/" + quote(ckan_id, safe=""))

    def list_revisions_since(self, since: datetime) -> list[str]:
        revisions = self._get_json(
            "rest/revision", params={"since_time": since.strftime("%Y-%m-%dT%H:%M:%S")}
        )
        if not isinstance(revisions, list):
            raise PortalError("Expected a list of revision ids", url=self._url("rest/revision"))
        return [str(r) for r in revisions]

    def revision_packages(self, revision_id: str) -> list[str]:
        revision = self._get_json("rest/revision/" + quote(revision_id, safe=""))
        packages = revision.get("packages") if isinstance(revision, dict) else None
        return [str(p) for p in packages or []]

    def list_changed_ids(self, since: datetime, workers: int = 4) -> list[str]:
        """Return the ids of datasets changed since a point in time.

        Revisions are resolved concurrently; the result is de-duplicated
        and sorted.

        Raises:
            PortalError: If any revision cannot be fetched.
        """
        revisions = self.list_revisions_since(since)
        changed: set[str] = set()
        lock = threading.Lock()

        def resolve(revision_ids: list[str]) -> None:
            for revision_id in revision_ids:
                packages = self.revision_packages(revision_id)
                with lock:
                    changed.update(packages)

        outcome = wait(Scheduler(workers).schedule(resolve, revisions), _REVISION_POLL)
        if outcome.state is WorkState.ERROR and outcome.error is not None:
            raise outcome.error
        logger.info("%d revisions touched %d datasets since %s", len(revisions), len(changed), since)
        return sorted(changed)
