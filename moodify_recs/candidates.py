"""
Candidate Generation Module
============================

Builds the candidate pool for a mood by:
1. Running many search queries concurrently and merging the results
2. Pulling anchor tracks from the listener's top artists and seeded recommendations
3. Expanding through related artists when anchors miss the mood
4. Resolving tag-service recordings to catalog tracks
5. Falling back to a broad mood search when the pool is thin

The Diversifier/Combiner at the bottom merges pools, drops duplicates
and shuffles the result.

Completion order of concurrent fetches never shows up in the output:
results are collected by input position and merged in input order.
"""

import logging
import random
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .concurrency import WorkerPool
from .config import DEFAULT_CANDIDATE_CONFIG, DEFAULT_MARKET, CandidateConfig
from .features import Track, track_from_spotify
from .queries import lookup_queries, mood_search_query
from .spotify_client import SpotifyClient
from .tags import TagRecording
from .utils import chunked, unique
from .vibe import MoodTargets

logger = logging.getLogger(__name__)

FALLBACK_REASON = "fallback mood search"
TAGGED_REASON = "tagged for this mood by listeners"


class TrackIndex:
    """
    Membership index for de-duplication.

    Two tracks are the same when their normalized (title, artist) keys
    match, or when both carry the same catalog ID.
    """

    def __init__(self, tracks: Iterable[Track] = ()):
        self._keys: Set[str] = set()
        self._ids: Set[str] = set()
        for track in tracks:
            self.add(track)

    def __contains__(self, track: Track) -> bool:
        if track.key in self._keys:
            return True
        return bool(track.spotify_id) and track.spotify_id in self._ids

    def __len__(self) -> int:
        return len(self._keys)

    def add(self, track: Track) -> bool:
        """Add a track; False if it was already present."""
        if track in self:
            return False
        self._keys.add(track.key)
        if track.spotify_id:
            self._ids.add(track.spotify_id)
        return True


def dedupe(tracks: Iterable[Track]) -> List[Track]:
    """Drop duplicates, keeping the first occurrence."""
    index = TrackIndex()
    return [t for t in tracks if index.add(t)]


class CandidateFetcher:
    """
    Fetches candidate tracks from the catalog.

    Strategy:
        1. Search queries in waves on the worker pool
        2. Anchor tracks from top artists and recommendations
        3. Related-artist discovery
        4. Lookup-chain resolution of external recordings
        5. Broad mood search as the last resort
    """

    def __init__(
        self,
        client: SpotifyClient,
        pool: WorkerPool,
        config: CandidateConfig = DEFAULT_CANDIDATE_CONFIG,
        market: str = DEFAULT_MARKET,
    ):
        """
        Initialize candidate fetcher.

        Args:
            client: Catalog client (listener token when available)
            pool: Worker pool bounding concurrent fetches
            config: Candidate generation configuration
            market: Market country code for every call
        """
        self.client = client
        self.pool = pool
        self.config = config
        self.market = market

    async def _search(self, query: str, limit: int) -> List[Dict]:
        return await self.client.search_tracks(query, limit=limit, market=self.market)

    async def search_many(
        self,
        queries: Sequence[str],
        per_query: Optional[int] = None,
        cap: Optional[int] = None,
    ) -> List[Dict]:
        """
        Run search queries and merge results by catalog ID.

        Queries run in waves of a few per worker. Each wave is merged in
        query order, and no further wave starts once the cap is reached.

        Args:
            queries: Ordered search queries
            per_query: Results requested per query
            cap: Maximum raw tracks to keep

        Returns:
            Raw catalog track dictionaries, de-duplicated by ID
        """
        per_query = per_query or self.config.per_query_limit
        cap = cap or self.config.pool_cap
        wave_size = self.pool.workers * 2

        merged: List[Dict] = []
        seen_ids: Set[str] = set()

        async def run(query: str) -> List[Dict]:
            return await self._search(query, per_query)

        for wave in chunked(list(queries), wave_size):
            results = await self.pool.map(run, wave)
            for items in results:
                for item in items or []:
                    track_id = str(item.get("id") or "")
                    if not track_id or track_id in seen_ids:
                        continue
                    seen_ids.add(track_id)
                    merged.append(item)
                    if len(merged) >= cap:
                        logger.info("Search pool capped at %d tracks", cap)
                        return merged

        logger.info("Search pool: %d tracks from %d queries", len(merged), len(queries))
        return merged

    async def artists_top_tracks(
        self,
        artist_ids: Sequence[str],
        per_artist: Optional[int] = None,
        cap: Optional[int] = None,
    ) -> List[Track]:
        """
        Top tracks for several artists, a few per artist.

        Args:
            artist_ids: Artist IDs in priority order
            per_artist: Tracks taken per artist
            cap: Total tracks kept

        Returns:
            Tracks in artist order
        """
        per_artist = per_artist or self.config.top_tracks_per_artist
        cap = cap or self.config.anchor_top_tracks_cap

        async def fetch(artist_id: str) -> List[Dict]:
            return await self.client.get_artist_top_tracks(artist_id, market=self.market)

        results = await self.pool.map(fetch, list(artist_ids))

        index = TrackIndex()
        out: List[Track] = []
        for items in results:
            added = 0
            for raw in items or []:
                track = track_from_spotify(raw)
                if track is None or not index.add(track):
                    continue
                out.append(track)
                added += 1
                if added >= per_artist or len(out) >= cap:
                    break
            if len(out) >= cap:
                break
        return out

    async def recommendations(
        self,
        targets: MoodTargets,
        seed_artists: Sequence[str] = (),
        seed_tracks: Sequence[str] = (),
        seed_genres: Sequence[str] = (),
        limit: Optional[int] = None,
    ) -> List[Track]:
        """Seeded recommendations tuned toward the mood targets."""
        items = await self.client.get_recommendations(
            seed_artists=seed_artists,
            seed_tracks=seed_tracks,
            seed_genres=seed_genres,
            limit=limit or self.config.anchor_recommendations,
            market=self.market,
            targets=targets.to_dict(),
        )
        return [t for t in (track_from_spotify(raw) for raw in items) if t is not None]

    async def related_artists(
        self,
        artist_ids: Sequence[str],
        cap: Optional[int] = None,
    ) -> List[str]:
        """
        Related artist IDs for several artists.

        Args:
            artist_ids: Artist IDs in priority order
            cap: Maximum related IDs returned

        Returns:
            Unique related artist IDs, in source-artist order
        """
        cap = cap or self.config.related_artists_cap
        results = await self.pool.map(self.client.get_related_artists, list(artist_ids))
        related = unique(
            str(a.get("id") or "") for artists in results for a in (artists or [])
        )
        return related[:cap]

    async def resolve_recording(self, title: str, artist: str) -> Optional[Track]:
        """
        Find the catalog track for a (title, artist) pair.

        Walks the lookup chain and stops at the first query with a hit.
        """
        for query in lookup_queries(title, artist):
            items = await self._search(query, 1)
            for raw in items:
                track = track_from_spotify(raw, match_reason=TAGGED_REASON)
                if track is not None:
                    return track
        return None

    async def resolve_recordings(
        self,
        recordings: Sequence[TagRecording],
        limit: Optional[int] = None,
    ) -> List[Track]:
        """
        Resolve external recordings to catalog tracks.

        Args:
            recordings: Recordings in priority order
            limit: Maximum tracks returned

        Returns:
            Unique resolved tracks, in recording order
        """
        limit = limit or self.config.tag_recordings_resolved

        async def resolve(rec: TagRecording) -> Optional[Track]:
            return await self.resolve_recording(rec.title, rec.artist)

        results = await self.pool.map(resolve, list(recordings))
        return dedupe(t for t in results if t is not None)[:limit]

    async def mood_search(self, mood: str, limit: Optional[int] = None) -> List[Track]:
        """Broad search for a mood; the last fallback for a thin pool."""
        limit = limit or self.config.mood_search_limit
        items = await self._search(mood_search_query(mood), limit)
        tracks = [track_from_spotify(raw, match_reason=FALLBACK_REASON) for raw in items]
        return [t for t in tracks if t is not None]


def combine_tracks(
    lists: Sequence[Sequence[Track]],
    exclude_keys: Optional[Set[str]] = None,
    total: int = DEFAULT_CANDIDATE_CONFIG.combine_total,
    rng: Optional[random.Random] = None,
) -> List[Track]:
    """
    Merge track lists into one shuffled, de-duplicated list.

    Earlier lists are drained first, so their tracks win when the total
    is reached. The shuffle is uniform; pass a seeded rng to reproduce it.

    Args:
        lists: Track lists in priority order
        exclude_keys: Normalized (title, artist) keys to leave out
        total: Maximum tracks kept
        rng: Random source for the shuffle

    Returns:
        At most `total` unique tracks, shuffled
    """
    rng = rng or random.Random()
    excluded = exclude_keys or set()
    index = TrackIndex()
    out: List[Track] = []
    for tracks in lists:
        for track in tracks:
            if len(out) >= total:
                break
            if track.key in excluded or not index.add(track):
                continue
            out.append(track)
    rng.shuffle(out)
    return out
