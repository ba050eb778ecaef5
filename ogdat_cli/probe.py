"""Link classification and reachability probing.

UrlProbe decides whether a value is a web link, an e-mail address or
neither, and can check that a web link actually serves data. Network
failures never propagate: they come back as check messages.

Usage:
    from ogdat_cli.probe import UrlProbe

    probe = UrlProbe(timeout=10.0)
    ok, messages = probe.classify("http://data.wien.gv.at/", follow_links=True)
"""

from __future__ import annotations

import logging
import re

import requests

from ogdat_cli.messages import DOCUMENT_LEVEL_ID, CheckFlag, CheckMessage

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0

# Length of the excerpt shown for values that are neither link nor address
EXCERPT_LENGTH = 20

_EMAIL = re.compile(r"^[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}$", re.IGNORECASE)


def is_email(value: str) -> bool:
    """True if value looks like an e-mail address (``mailto:`` allowed)."""
    if value.lower().startswith("mailto:"):
        value = value[len("mailto:") :]
    return _EMAIL.match(value) is not None


class UrlProbe:
    """Classifies link values and optionally probes them over HTTP.

    Probing sends HEAD (following redirects) and, if that raises or does
    not answer 200, retries once with a streamed GET.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._session = session or requests.Session()
        self._timeout = timeout

    @property
    def timeout(self) -> float:
        return self._timeout

    def fetch_head(self, url: str) -> tuple[bool, str]:
        """Check that url answers with HTTP 200.

        Returns:
            Tuple of (reachable, reason). reason is empty on success.
        """
        try:
            response = self._session.head(url, allow_redirects=True, timeout=self._timeout)
            status = response.status_code
            response.close()
            if status == 200:
                return True, ""
            reason = f"HEAD returned status {status}"
        except requests.RequestException as exc:
            reason = f"HEAD failed: {exc}"

        logger.debug("Retrying %s with GET after %s", url, reason)
        try:
            response = self._session.get(
                url, allow_redirects=True, timeout=self._timeout, stream=True
            )
            status = response.status_code
            response.close()
        except requests.RequestException as exc:
            logger.warning("URL %s cannot be fetched: %s", url, exc)
            return False, f"URL cannot be resolved: {exc}"
        if status != 200:
            logger.warning("URL %s answered with status %d", url, status)
            return False, f"request returned non-OK status {status}"
        return True, ""

    def classify(self, raw: str, follow_links: bool = False) -> tuple[bool, list[CheckMessage]]:
        """Classify a link value.

        Messages carry DOCUMENT_LEVEL_ID; callers retarget them to the
        field they checked.

        Returns:
            Tuple of (ok, messages).
        """
        if not raw:
            return False, [CheckMessage(CheckFlag.ERROR, DOCUMENT_LEVEL_ID, "no value")]

        if raw.startswith("http"):
            if not follow_links:
                return True, [
                    CheckMessage(
                        CheckFlag.INFO | CheckFlag.FETCHABLE_URL,
                        DOCUMENT_LEVEL_ID,
                        f"link not followed: '{raw}'",
                        raw,
                    )
                ]
            reachable, reason = self.fetch_head(raw)
            if reachable:
                return True, [
                    CheckMessage(
                        CheckFlag.INFO | CheckFlag.FETCHABLE_URL | CheckFlag.FETCH_SUCCESS,
                        DOCUMENT_LEVEL_ID,
                        f"link is reachable: '{raw}'",
                        raw,
                    )
                ]
            return False, [
                CheckMessage(
                    CheckFlag.ERROR | CheckFlag.FETCHABLE_URL | CheckFlag.NO_DATA_AT_URL,
                    DOCUMENT_LEVEL_ID,
                    f"no data at '{raw}': {reason}",
                    raw,
                )
            ]

        if is_email(raw):
            return True, []

        return False, [
            CheckMessage(
                CheckFlag.WARNING,
                DOCUMENT_LEVEL_ID,
                f"probably not a valid web or email address: '{raw[:EXCERPT_LENGTH]}' (excerpt)",
            )
        ]
