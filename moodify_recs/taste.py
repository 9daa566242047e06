"""
Taste Profile Module
====================

Aggregates a listener's history into a read-only profile, and fetches the
smaller set of personalization seeds used for anchor candidates.

Every sub-fetch may fail on its own; a failure contributes nothing and
never aborts the profile. Without a listener credential the profile is
empty and the pipeline runs on mood alone.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional, Protocol, Tuple

from .concurrency import Deadline, WorkerPool
from .config import DEFAULT_FETCH_CONFIG, DEFAULT_TASTE_CONFIG, FetchConfig, TasteConfig
from .spotify_client import SpotifyClient
from .utils import TTLCache

logger = logging.getLogger(__name__)


class TagService(Protocol):
    async def artist_tags(self, name: str) -> List[str]:
        ...


@dataclass(frozen=True)
class TasteProfile:
    """Listener history summary; empty for anonymous requests."""
    artist_names: Tuple[str, ...] = ()
    artist_ids: FrozenSet[str] = frozenset()
    genres: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    top_track_ids: FrozenSet[str] = frozenset()
    saved_track_ids: FrozenSet[str] = frozenset()
    recent_track_ids: FrozenSet[str] = frozenset()

    @property
    def is_empty(self) -> bool:
        return not (
            self.artist_names or self.artist_ids or self.top_track_ids
            or self.saved_track_ids or self.recent_track_ids
        )


@dataclass(frozen=True)
class PersonalSeeds:
    """Seeds for anchor candidates, cached per listener."""
    user_id: str
    display_name: Optional[str]
    top_artist_ids: Tuple[str, ...]
    top_artist_names: Tuple[str, ...]
    top_track_ids: Tuple[str, ...]
    recent_track_ids: Tuple[str, ...]


async def _settled(*coros) -> List[Any]:
    """Await concurrently; a raised exception becomes an empty list."""
    results = await asyncio.gather(*coros, return_exceptions=True)
    settled = []
    for result in results:
        if isinstance(result, BaseException):
            logger.warning("Listener history fetch failed: %r", result)
            settled.append([])
        else:
            settled.append(result)
    return settled


def _ids(items: List[Dict]) -> List[str]:
    return [str(i["id"]) for i in items if i.get("id")]


class TasteProfileBuilder:
    """
    Builds a TasteProfile from a listener's catalog history.

    Genres come from top artists; tags come from the tag service for the
    first few artist names.
    """

    def __init__(
        self,
        tag_service: Optional[TagService] = None,
        config: TasteConfig = DEFAULT_TASTE_CONFIG,
        fetch_config: FetchConfig = DEFAULT_FETCH_CONFIG,
        deadline: Optional[Deadline] = None,
    ):
        """
        Initialize taste profile builder.

        Args:
            tag_service: Artist tag lookup (tags skipped if None)
            config: Page sizes and caps
            fetch_config: Worker counts for tag lookups
            deadline: Request deadline
        """
        self.tag_service = tag_service
        self.config = config
        self.fetch_config = fetch_config
        self.deadline = deadline

    async def build(self, user_client: Optional[SpotifyClient]) -> TasteProfile:
        """
        Build a taste profile.

        Args:
            user_client: Catalog client holding the listener's token, or None

        Returns:
            TasteProfile (empty without a listener)
        """
        if user_client is None:
            return TasteProfile()

        cfg = self.config
        artists, tracks, saved, recent = await _settled(
            user_client.get_top_artists(cfg.top_artists),
            user_client.get_top_tracks(cfg.top_tracks),
            user_client.get_saved_tracks(cfg.saved_tracks),
            user_client.get_recently_played(cfg.recent_tracks),
        )

        names = [str(a.get("name") or "") for a in artists if a.get("id") and a.get("name")]
        genre_counts: Counter = Counter()
        for artist in artists:
            for genre in artist.get("genres") or []:
                if genre:
                    genre_counts[str(genre).lower()] += 1

        tags = await self._collect_tags(names[:cfg.tag_artists])

        profile = TasteProfile(
            artist_names=tuple(names),
            artist_ids=frozenset(_ids(artists)),
            genres=tuple(g for g, _ in genre_counts.most_common(cfg.max_genres)),
            tags=tuple(tags),
            top_track_ids=frozenset(_ids(tracks)),
            saved_track_ids=frozenset(_ids(saved)),
            recent_track_ids=frozenset(_ids(recent)),
        )
        logger.info(
            "Taste profile: %d artists, %d genres, %d tags",
            len(profile.artist_names), len(profile.genres), len(profile.tags),
        )
        return profile

    async def _collect_tags(self, names: List[str]) -> List[str]:
        if self.tag_service is None or not names:
            return []
        pool = WorkerPool(self.fetch_config.tag_workers, self.deadline)
        tag_lists = await pool.map(self.tag_service.artist_tags, names)
        counts: Counter = Counter()
        for tags in tag_lists:
            for tag in tags or []:
                counts[tag] += 1
        return [t for t, _ in counts.most_common(self.config.max_tags)]


class PersonalSeedsProvider:
    """Fetches (or serves from cache) a listener's personalization seeds."""

    def __init__(self, cache: TTLCache, config: TasteConfig = DEFAULT_TASTE_CONFIG):
        self.cache = cache
        self.config = config

    async def get(self, user_client: Optional[SpotifyClient]) -> Optional[PersonalSeeds]:
        """
        Get seeds for the listener behind a client.

        Returns:
            PersonalSeeds, or None when the listener cannot be identified
        """
        if user_client is None:
            return None
        me = await user_client.get_current_user()
        user_id = str((me or {}).get("id") or "")
        if not user_id:
            logger.info("Listener could not be identified; skipping personalization")
            return None

        cached = self.cache.get(user_id)
        if cached is not None:
            return cached

        cfg = self.config
        artists, tracks, recent = await _settled(
            user_client.get_top_artists(cfg.seed_top_artists),
            user_client.get_top_tracks(cfg.seed_top_tracks),
            user_client.get_recently_played(cfg.seed_recent_tracks),
        )
        seeds = PersonalSeeds(
            user_id=user_id,
            display_name=(me or {}).get("display_name") or None,
            top_artist_ids=tuple(_ids(artists)),
            top_artist_names=tuple(str(a["name"]) for a in artists if a.get("name")),
            top_track_ids=tuple(_ids(tracks)),
            recent_track_ids=tuple(_ids(recent)),
        )
        self.cache.set(user_id, seeds)
        return seeds
