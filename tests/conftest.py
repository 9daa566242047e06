import random
import time
from typing import Callable, Dict, List, Optional

import pytest

from moodify_recs.concurrency import Deadline
from moodify_recs.recommender import EngineCaches, RecommendationEngine
from moodify_recs.spotify_client import SpotifyClient
from moodify_recs.tags import TagRecording


def raw_track(
    track_id: Optional[str],
    title: str,
    artist: str = "Luna Vibe",
    artist_id: Optional[str] = None,
    album: str = "",
    release_date: str = "2015-01-01",
    popularity: int = 50,
) -> Dict:
    """Catalog track object as returned by search and top-tracks."""
    return {
        "id": track_id,
        "name": title,
        "artists": [{"id": artist_id or f"ar-{artist.lower().replace(' ', '-')}", "name": artist}],
        "album": {
            "name": album,
            "release_date": release_date,
            "images": [{"url": "https://img/large"}, {"url": "https://img/medium"}],
        },
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"} if track_id else {},
        "preview_url": None,
        "popularity": popularity,
        "duration_ms": 200000,
    }


def features_for(track_id: str, valence=0.5, energy=0.5, danceability=0.5, tempo=100.0) -> Dict:
    return {
        "id": track_id,
        "valence": valence,
        "energy": energy,
        "danceability": danceability,
        "tempo": tempo,
    }


class FakeSpotify:
    """Stands in for spotipy.Spotify; every method is synchronous like the real one."""

    def __init__(
        self,
        search: Optional[Callable[[str], List[Dict]]] = None,
        features: Optional[Dict[str, Dict]] = None,
        artists: Optional[Dict[str, Dict]] = None,
        top_tracks: Optional[Dict[str, List[Dict]]] = None,
        related: Optional[Dict[str, List[Dict]]] = None,
        recommendations: Optional[List[Dict]] = None,
        genre_seeds: Optional[List[str]] = None,
        user: Optional[Dict] = None,
        top_artists: Optional[List[Dict]] = None,
        user_top_tracks: Optional[List[Dict]] = None,
        saved: Optional[List[Dict]] = None,
        recent: Optional[List[Dict]] = None,
    ):
        self._search = search or (lambda q: [])
        self._features = features or {}
        self._artists = artists or {}
        self._top_tracks = top_tracks or {}
        self._related = related or {}
        self._recommendations = recommendations or []
        self._genre_seeds = genre_seeds
        self._user = user
        self._top_artists = top_artists or []
        self._user_top_tracks = user_top_tracks or []
        self._saved = saved or []
        self._recent = recent or []
        self.calls: List[tuple] = []

    def search(self, q, limit=10, type="track", market=None):
        self.calls.append(("search", q, market))
        return {"tracks": {"items": list(self._search(q))[:limit]}}

    def audio_features(self, ids):
        self.calls.append(("audio_features", tuple(ids)))
        return [self._features.get(i) for i in ids]

    def artists(self, ids):
        self.calls.append(("artists", tuple(ids)))
        return {"artists": [self._artists[i] for i in ids if i in self._artists]}

    def artist_top_tracks(self, artist_id, country=None):
        self.calls.append(("artist_top_tracks", artist_id, country))
        return {"tracks": self._top_tracks.get(artist_id, [])}

    def artist_related_artists(self, artist_id):
        self.calls.append(("artist_related_artists", artist_id))
        return {"artists": self._related.get(artist_id, [])}

    def recommendations(self, **kwargs):
        self.calls.append(("recommendations", kwargs))
        return {"tracks": self._recommendations}

    def recommendation_genre_seeds(self):
        self.calls.append(("recommendation_genre_seeds",))
        if self._genre_seeds is None:
            return None
        return {"genres": self._genre_seeds}

    def current_user(self):
        return self._user

    def current_user_top_artists(self, limit=20, time_range="medium_term"):
        return {"items": self._top_artists[:limit]}

    def current_user_top_tracks(self, limit=20, time_range="medium_term"):
        return {"items": self._user_top_tracks[:limit]}

    def current_user_saved_tracks(self, limit=20):
        return {"items": [{"track": t} for t in self._saved[:limit]]}

    def current_user_recently_played(self, limit=50):
        return {"items": [{"track": t} for t in self._recent[:limit]]}

    def called(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]


class FakeTags:
    """Tag service double with canned answers."""

    def __init__(
        self,
        artist_tags: Optional[Dict[str, List[str]]] = None,
        recordings: Optional[List[TagRecording]] = None,
        popularity: Optional[Dict[str, float]] = None,
    ):
        self._artist_tags = artist_tags or {}
        self._recordings = recordings or []
        self._popularity = popularity or {}
        self.tag_queries: List[str] = []
        self.artist_lookups: List[str] = []

    async def artist_tags(self, name: str) -> List[str]:
        self.artist_lookups.append(name)
        return list(self._artist_tags.get(name, []))

    async def recordings_by_tag(self, tag: str, limit: int = 25) -> List[TagRecording]:
        self.tag_queries.append(tag)
        return self._recordings[:limit]

    async def recording_popularity(self, mbid: str) -> float:
        return self._popularity.get(mbid, 0.0)


class FakeTokenProvider:
    def __init__(self, token: str = "app-token", error: Optional[Exception] = None):
        self.token = token
        self.error = error
        self.calls = 0

    async def acquire(self) -> str:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.token


async def no_sleep(seconds: float) -> None:
    return None


def client_for(sp: FakeSpotify, deadline: Optional[Deadline] = None) -> SpotifyClient:
    return SpotifyClient(sp=sp, deadline=deadline, sleep=no_sleep)


def build_engine(
    app_sp: FakeSpotify,
    user_sp: Optional[FakeSpotify] = None,
    tags: Optional[FakeTags] = None,
    token_provider: Optional[FakeTokenProvider] = None,
    seed: int = 7,
    deadline_seconds: Optional[float] = None,
    clock: Callable[[], float] = time.monotonic,
) -> RecommendationEngine:
    """Engine wired to fakes: the token 'app-token' maps to app_sp, anything else to user_sp."""
    tags = tags or FakeTags()

    def factory(token: str, deadline: Deadline) -> SpotifyClient:
        sp = app_sp if token == "app-token" else (user_sp or app_sp)
        return client_for(sp, deadline)

    return RecommendationEngine(
        token_provider=token_provider or FakeTokenProvider(),
        client_factory=factory,
        tags_factory=lambda deadline: tags,
        caches=EngineCaches.create(),
        rng=random.Random(seed),
        deadline_seconds=deadline_seconds,
        clock=clock,
    )


@pytest.fixture
def fake_spotify():
    return FakeSpotify()


@pytest.fixture
def fake_tags():
    return FakeTags()
