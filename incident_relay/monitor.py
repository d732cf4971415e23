"""
Async Status Page Client: the fetch side of the relay.

Retrieves the Statuspage incidents endpoint and decodes it. It uses:
  - Conditional HTTP (ETag / If-Modified-Since) to skip unchanged payloads
  - Content hashing (SHA-256) as a second guard when the server sends no ETag

An unchanged payload yields ``None`` so the caller can skip reconciliation;
feeding the same batch twice would produce an empty change-set anyway.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from typing import Dict, List, Optional

import aiohttp

from incident_relay.errors import DecodeFailed, FetchFailed
from incident_relay.feed_parser import parse_incidents
from incident_relay.models import Incident, StatusPageConfig

log = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 15


class StatusPageClient:
    """
    Fetches incidents from a single status page.

    Attributes:
        config: The status page being polled.
    """

    def __init__(self, config: StatusPageConfig, session: aiohttp.ClientSession) -> None:
        self.config = config
        self._session = session

        # Conditional HTTP state
        self._etag: Optional[str] = None
        self._last_modified: Optional[str] = None

        # Change detection
        self._last_hash: Optional[str] = None

    async def fetch(self) -> Optional[List[Incident]]:
        """
        Execute a single fetch:
        1. GET with conditional headers
        2. Return None on 304 Not Modified or an identical body
        3. Decode JSON and parse incidents, newest first

        Raises:
            FetchFailed: on network errors, timeouts or non-2xx responses.
            DecodeFailed: on a malformed payload.
        """
        url = self.config.incidents_url
        headers: Dict[str, str] = {"Accept": "application/json"}
        if self._etag:
            headers["If-None-Match"] = self._etag
        if self._last_modified:
            headers["If-Modified-Since"] = self._last_modified

        log.info("Fetching %s incidents from %s", self.config.name, url)
        try:
            async with self._session.get(
                url,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS),
            ) as resp:
                if resp.status == 304:
                    log.debug("304 Not Modified for %s", self.config.name)
                    return None

                resp.raise_for_status()
                body = await resp.read()

                etag = resp.headers.get("ETag")
                last_modified = resp.headers.get("Last-Modified")
        except aiohttp.ClientResponseError as exc:
            raise FetchFailed(f"HTTP {exc.status} from {url}: {exc.message}") from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise FetchFailed(f"request to {url} failed: {exc!r}") from exc

        log.info("Received %d bytes from %s", len(body), self.config.name)

        content_hash = hashlib.sha256(body).hexdigest()
        if content_hash == self._last_hash:
            log.debug("Payload unchanged for %s", self.config.name)
            return None

        # UnicodeDecodeError is a ValueError, so bad encodings land here too.
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise DecodeFailed(f"invalid JSON from {url}: {exc}") from exc
        incidents = parse_incidents(payload)

        # Only remember validators for payloads that decoded cleanly.
        self._last_hash = content_hash
        self._etag = etag
        self._last_modified = last_modified

        log.info("Parsed %d incident(s) from %s", len(incidents), self.config.name)
        return incidents
