"""
Feature Enrichment Module
=========================

Track model plus the enrichment step that attaches catalog metadata to
candidates before scoring.

Feature Categories:
    1. Audio Features (valence, energy, danceability in 0-1; tempo in BPM)
    2. Artist Genres (lower-cased genre tokens per artist)

A feature that the catalog did not report stays None. Scoring treats
None as "unknown", never as zero.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .concurrency import WorkerPool
from .config import ARTISTS_BATCH, AUDIO_FEATURES_BATCH, SPOTIFY_TRACK_URL
from .spotify_client import SpotifyClient
from .utils import chunked, normalize_text, unique

logger = logging.getLogger(__name__)

FEATURE_NAMES = ("valence", "energy", "danceability", "tempo")

FEATURES_JOB = "features"
ARTISTS_JOB = "artists"


def _number(value: Any) -> Optional[float]:
    """Return value as float when it is a real number, else None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if math.isnan(value):
        return None
    return float(value)


def track_key(title: str, artist: str) -> str:
    """Identity of a logical track: trimmed, case-insensitive title and artist."""
    return f"{normalize_text(title)}@@{normalize_text(artist)}"


@dataclass(frozen=True)
class AudioFeatures:
    """Audio descriptors for one track; None means unknown."""
    track_id: str
    valence: Optional[float] = None
    energy: Optional[float] = None
    danceability: Optional[float] = None
    tempo: Optional[float] = None

    @classmethod
    def from_spotify(cls, raw: Mapping[str, Any]) -> Optional["AudioFeatures"]:
        track_id = str(raw.get("id") or "").strip()
        if not track_id:
            return None
        return cls(track_id=track_id, **{name: _number(raw.get(name)) for name in FEATURE_NAMES})


@dataclass
class Track:
    """A candidate recommendation."""
    title: str
    artist: str
    cover: str = ""
    preview_url: Optional[str] = None
    spotify_url: Optional[str] = None
    spotify_id: Optional[str] = None
    artist_ids: List[str] = field(default_factory=list)
    primary_artist_id: Optional[str] = None
    match_reason: Optional[str] = None
    duration_ms: Optional[int] = None

    @property
    def key(self) -> str:
        return track_key(self.title, self.artist)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "title": self.title,
            "artist": self.artist,
            "cover": self.cover,
            "preview_url": self.preview_url,
            "spotify_url": self.spotify_url,
            "spotify_id": self.spotify_id,
            "artist_ids": list(self.artist_ids),
            "primary_artist_id": self.primary_artist_id,
            "match_reason": self.match_reason,
            "duration_ms": self.duration_ms,
        }


def track_from_spotify(raw: Mapping[str, Any], match_reason: Optional[str] = None) -> Optional[Track]:
    """
    Map a catalog track object to a Track.

    Args:
        raw: Track dictionary as returned by search, top-tracks or recommendations
        match_reason: Optional human-readable reason to attach

    Returns:
        Track, or None when the object has no title or no artist
    """
    title = str(raw.get("name") or "").strip()
    artists = [a for a in (raw.get("artists") or []) if isinstance(a, dict)]
    names = [str(a.get("name") or "").strip() for a in artists]
    artist = ", ".join(n for n in names if n)
    if not title or not artist:
        return None

    album = raw.get("album") or {}
    images = [img for img in (album.get("images") or []) if isinstance(img, dict)]
    cover = ""
    if len(images) > 1 and images[1].get("url"):
        cover = images[1]["url"]
    elif images and images[0].get("url"):
        cover = images[0]["url"]

    track_id = str(raw.get("id") or "").strip() or None
    spotify_url = (raw.get("external_urls") or {}).get("spotify")
    if not spotify_url and track_id:
        spotify_url = SPOTIFY_TRACK_URL.format(track_id=track_id)

    artist_ids = [str(a["id"]) for a in artists if a.get("id")]
    duration = raw.get("duration_ms")

    return Track(
        title=title,
        artist=artist,
        cover=cover,
        preview_url=raw.get("preview_url") or None,
        spotify_url=spotify_url,
        spotify_id=track_id,
        artist_ids=artist_ids,
        primary_artist_id=artist_ids[0] if artist_ids else None,
        match_reason=match_reason,
        duration_ms=int(duration) if isinstance(duration, (int, float)) else None,
    )


def track_genres(track: Track, artist_genres: Mapping[str, List[str]]) -> List[str]:
    """Genres of every contributing artist, in artist order."""
    genres: List[str] = []
    for artist_id in track.artist_ids:
        genres.extend(artist_genres.get(artist_id, []))
    return genres


@dataclass
class Enrichment:
    """Audio features and artist genres resolved for a candidate pool."""
    features: Dict[str, AudioFeatures] = field(default_factory=dict)
    artist_genres: Dict[str, List[str]] = field(default_factory=dict)

    def features_for(self, track: Track) -> Optional[AudioFeatures]:
        if not track.spotify_id:
            return None
        return self.features.get(track.spotify_id)

    def genres_for(self, track: Track) -> List[str]:
        return track_genres(track, self.artist_genres)

    def update(self, other: "Enrichment") -> None:
        """Merge another enrichment into this one."""
        self.features.update(other.features)
        self.artist_genres.update(other.artist_genres)


class FeatureEnricher:
    """
    Fetches audio features and artist genres in catalog-sized batches.

    Batches run on the shared worker pool; a failed batch simply leaves its
    IDs out of the result.
    """

    def __init__(self, client: SpotifyClient, pool: WorkerPool):
        """
        Initialize feature enricher.

        Args:
            client: Catalog client used for the batch lookups
            pool: Worker pool bounding concurrent batches
        """
        self.client = client
        self.pool = pool

    @staticmethod
    def _parse_features(batches: Sequence[Optional[List[Dict]]]) -> Dict[str, AudioFeatures]:
        features: Dict[str, AudioFeatures] = {}
        for batch in batches:
            for raw in batch or []:
                parsed = AudioFeatures.from_spotify(raw)
                if parsed is not None:
                    features[parsed.track_id] = parsed
        return features

    @staticmethod
    def _parse_genres(batches: Sequence[Optional[List[Dict]]]) -> Dict[str, List[str]]:
        genres: Dict[str, List[str]] = {}
        for batch in batches:
            for artist in batch or []:
                artist_id = str(artist.get("id") or "")
                if not artist_id:
                    continue
                genres[artist_id] = [
                    str(g).lower() for g in (artist.get("genres") or []) if g
                ]
        return genres

    async def audio_features(self, track_ids: Sequence[str]) -> Dict[str, AudioFeatures]:
        """
        Get audio features for tracks (batched, 80 per call).

        Args:
            track_ids: Spotify track IDs (duplicates ignored)

        Returns:
            Dict mapping track ID to AudioFeatures; unknown IDs are absent
        """
        ids = unique(track_ids)
        batches = list(chunked(ids, AUDIO_FEATURES_BATCH))
        features = self._parse_features(await self.pool.map(self.client.get_audio_features, batches))
        logger.debug("Audio features resolved for %d of %d tracks", len(features), len(ids))
        return features

    async def artist_genres(self, artist_ids: Sequence[str]) -> Dict[str, List[str]]:
        """
        Get genres for artists (batched, 50 per call).

        Args:
            artist_ids: Spotify artist IDs (duplicates ignored)

        Returns:
            Dict mapping artist ID to lower-cased genres
        """
        batches = list(chunked(unique(artist_ids), ARTISTS_BATCH))
        return self._parse_genres(await self.pool.map(self.client.get_artists, batches))

    async def enrich(self, tracks: Sequence[Track]) -> Enrichment:
        """
        Fetch audio features and artist genres for a pool.

        Both kinds of batch share one pass over the worker pool, so the
        pool's worker count bounds the whole step.
        """
        feature_batches = list(chunked(unique(t.spotify_id for t in tracks), AUDIO_FEATURES_BATCH))
        artist_batches = list(chunked(unique(a for t in tracks for a in t.artist_ids), ARTISTS_BATCH))
        jobs = [(FEATURES_JOB, b) for b in feature_batches] + [(ARTISTS_JOB, b) for b in artist_batches]

        async def run(job: Tuple[str, List[str]]) -> List[Dict]:
            kind, batch = job
            if kind == FEATURES_JOB:
                return await self.client.get_audio_features(batch)
            return await self.client.get_artists(batch)

        results = await self.pool.map(run, jobs)
        split = len(feature_batches)
        return Enrichment(
            features=self._parse_features(results[:split]),
            artist_genres=self._parse_genres(results[split:]),
        )
