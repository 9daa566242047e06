"""
MusicBrainz Tag Service
=======================

Best-effort community tags for artists, recordings by tag, and ListenBrainz
listen counts used to order those recordings.

Used to enrich the taste profile and to pad a thin candidate pool. Calls
go through the same retry policy as the catalog, with a longer timeout;
MusicBrainz rate-limits anonymous clients hard, so every request carries
an identifying User-Agent.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from .concurrency import Deadline, Sleep, call_with_retry
from .config import (
    DEFAULT_FETCH_CONFIG,
    LISTENBRAINZ_BASE_URL,
    MOODIFY_USER_AGENT,
    MUSICBRAINZ_BASE_URL,
    FetchConfig,
)
from .errors import UpstreamError, parse_retry_after
from .utils import TTLCache, normalize_text

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TagRecording:
    """A recording found by tag search."""
    id: str
    title: str
    artist: str


class MusicBrainzTags:
    """
    Thin MusicBrainz client.

    One instance is created per request so it can share that request's
    deadline; the artist-tag cache is passed in and outlives it.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        cache: Optional[TTLCache] = None,
        base_url: str = MUSICBRAINZ_BASE_URL,
        listenbrainz_url: str = LISTENBRAINZ_BASE_URL,
        user_agent: str = MOODIFY_USER_AGENT,
        config: FetchConfig = DEFAULT_FETCH_CONFIG,
        deadline: Optional[Deadline] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Initialize tag service.

        Args:
            session: requests session (a new one if None)
            cache: Artist-name -> tags cache (no caching if None)
            base_url: MusicBrainz web service root
            listenbrainz_url: ListenBrainz API root
            user_agent: Identifying User-Agent header
            config: Timeout/retry configuration
            deadline: Request deadline
            sleep: Awaitable sleep used between retries
        """
        self.session = session or requests.Session()
        self.cache = cache
        self.base_url = base_url.rstrip("/")
        self.listenbrainz_url = listenbrainz_url.rstrip("/")
        self.headers = {"Accept": "application/json", "User-Agent": user_agent}
        self.config = config
        self.deadline = deadline
        self._sleep = sleep

    def _get_json(self, url: str, params: Dict[str, Any]) -> Any:
        response = self.session.get(
            url,
            params=params,
            headers=self.headers,
            timeout=self.config.tag_request_timeout,
        )
        if response.status_code >= 400:
            raise UpstreamError(
                response.status_code,
                f"{url}: HTTP {response.status_code}",
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )
        return response.json()

    async def _fetch(self, label: str, url: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        return await call_with_retry(
            self._get_json,
            url,
            params or {},
            label=label,
            config=self.config,
            timeout=self.config.tag_request_timeout,
            deadline=self.deadline,
            sleep=self._sleep,
        )

    def _mb_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    async def artist_tags(self, name: str) -> List[str]:
        """
        Get community tags for an artist by name.

        Args:
            name: Artist name

        Returns:
            Lower-cased tags (empty when the artist is unknown)
        """
        key = normalize_text(name)
        if not key:
            return []
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        found = await self._fetch(
            f"mb artist {name!r}",
            self._mb_url("artist"),
            {"query": f"artist:{name}", "limit": 1, "fmt": "json"},
        )
        artists = found.get("artists") if isinstance(found, dict) else None
        artist_id = artists[0].get("id") if artists and isinstance(artists[0], dict) else None
        if not artist_id:
            return []

        detail = await self._fetch(
            f"mb artist tags {artist_id}",
            self._mb_url(f"artist/{artist_id}"),
            {"inc": "tags", "fmt": "json"},
        )
        if not isinstance(detail, dict):
            return []
        tags = [
            str(t.get("name") or "").lower()
            for t in (detail.get("tags") or [])
            if isinstance(t, dict) and t.get("name")
        ]
        if self.cache is not None:
            self.cache.set(key, tags)
        return tags

    async def recordings_by_tag(self, tag: str, limit: int = 25) -> List[TagRecording]:
        """
        Search recordings carrying a tag.

        Args:
            tag: Tag name (e.g. a lower-cased mood)
            limit: Maximum recordings to request

        Returns:
            Recordings with an id, a title and a credited artist
        """
        found = await self._fetch(
            f"mb recordings tag:{tag}",
            self._mb_url("recording"),
            {"query": f"tag:{tag}", "limit": limit, "fmt": "json"},
        )
        if not isinstance(found, dict):
            return []

        recordings = []
        for rec in found.get("recordings") or []:
            if not isinstance(rec, dict):
                continue
            credits = rec.get("artist-credit") or []
            first = credits[0] if credits and isinstance(credits[0], dict) else {}
            artist = str(first.get("name") or (first.get("artist") or {}).get("name") or "").strip()
            title = str(rec.get("title") or "").strip()
            rec_id = str(rec.get("id") or "").strip()
            if title and artist and rec_id:
                recordings.append(TagRecording(id=rec_id, title=title, artist=artist))

        logger.debug("MusicBrainz tag %r returned %d recordings", tag, len(recordings))
        return recordings

    async def recording_popularity(self, mbid: str) -> float:
        """
        Get the ListenBrainz listen count for a recording.

        Returns 0.0 when the recording is unknown or the lookup fails.
        """
        found = await self._fetch(f"lb recording {mbid}", f"{self.listenbrainz_url}/recording/{mbid}")
        if not isinstance(found, dict):
            return 0.0
        payload = found.get("payload") if isinstance(found.get("payload"), dict) else {}
        for value in (found.get("listen_count"), found.get("count"), found.get("score"), payload.get("count")):
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
        return 0.0
