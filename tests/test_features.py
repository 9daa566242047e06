import asyncio
import threading
import time

from moodify_recs.concurrency import WorkerPool
from moodify_recs.features import AudioFeatures, FeatureEnricher, Track, track_from_spotify, track_genres, track_key

from conftest import FakeSpotify, client_for, features_for, raw_track


def test_track_from_spotify():
    raw = raw_track("t1", "Neon Dreams", artist="Luna Vibe", artist_id="lv")
    raw["artists"].append({"id": "guest", "name": "Guest"})
    track = track_from_spotify(raw, match_reason="because")

    assert track.title == "Neon Dreams"
    assert track.artist == "Luna Vibe, Guest"
    assert track.cover == "https://img/medium"
    assert track.artist_ids == ["lv", "guest"]
    assert track.primary_artist_id == "lv"
    assert track.spotify_url == "https://open.spotify.com/track/t1"
    assert track.match_reason == "because"
    assert track.duration_ms == 200000


def test_track_without_title_or_artist_is_dropped():
    assert track_from_spotify(raw_track("t1", "  ")) is None
    raw = raw_track("t2", "Song")
    raw["artists"] = []
    assert track_from_spotify(raw) is None


def test_catalog_url_built_from_id():
    raw = raw_track("abc", "Song")
    raw["external_urls"] = {}
    raw["album"]["images"] = [{"url": "https://img/only"}]
    track = track_from_spotify(raw)
    assert track.spotify_url == "https://open.spotify.com/track/abc"
    assert track.cover == "https://img/only"


def test_track_key_is_normalized():
    assert track_key(" Neon Dreams", "LUNA VIBE ") == track_key("neon dreams", "luna vibe")
    assert Track("Neon Dreams", "Luna Vibe").key == "neon dreams@@luna vibe"


def test_audio_features_parse_unknowns():
    f = AudioFeatures.from_spotify({"id": "t", "valence": 0.4, "energy": None, "tempo": float("nan")})
    assert f.valence == 0.4
    assert f.energy is None
    assert f.tempo is None
    assert AudioFeatures.from_spotify({"valence": 0.4}) is None


def test_enricher_batches_and_maps():
    ids = [f"t{i}" for i in range(170)]
    sp = FakeSpotify(
        features={i: features_for(i) for i in ids[:100]},
        artists={"a1": {"id": "a1", "genres": ["Indie Pop"]}},
    )
    enricher = FeatureEnricher(client_for(sp), WorkerPool(3))

    features = asyncio.run(enricher.audio_features(ids + ["t0"]))
    assert len(features) == 100
    assert sorted(len(c[1]) for c in sp.called("audio_features")) == [10, 80, 80]

    genres = asyncio.run(enricher.artist_genres(["a1", "missing"]))
    assert genres == {"a1": ["indie pop"]}


def test_enrich_collects_both_maps():
    sp = FakeSpotify(
        features={"t1": features_for("t1", valence=0.9)},
        artists={"a1": {"id": "a1", "genres": ["lofi"]}},
    )
    track = Track("Song", "Someone", spotify_id="t1", artist_ids=["a1"])
    enrichment = asyncio.run(FeatureEnricher(client_for(sp), WorkerPool(2)).enrich([track]))

    assert enrichment.features_for(track).valence == 0.9
    assert enrichment.genres_for(track) == ["lofi"]
    assert track_genres(track, enrichment.artist_genres) == ["lofi"]


class CountingSpotify(FakeSpotify):
    """Tracks how many batch lookups are in flight at once."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.lock = threading.Lock()
        self.active = 0
        self.peak = 0

    def _enter(self):
        with self.lock:
            self.active += 1
            self.peak = max(self.peak, self.active)
        time.sleep(0.01)
        with self.lock:
            self.active -= 1

    def audio_features(self, ids):
        self._enter()
        return super().audio_features(ids)

    def artists(self, ids):
        self._enter()
        return super().artists(ids)


def test_enrich_stays_within_worker_count():
    tracks = [Track(f"Song {i}", f"Artist {i}", spotify_id=f"t{i}", artist_ids=[f"a{i}"]) for i in range(400)]
    sp = CountingSpotify(features={"t0": features_for("t0", valence=0.3)})
    enrichment = asyncio.run(FeatureEnricher(client_for(sp), WorkerPool(2)).enrich(tracks))

    assert sp.peak <= 2
    assert len(sp.called("audio_features")) == 5
    assert len(sp.called("artists")) == 8
    assert enrichment.features_for(tracks[0]).valence == 0.3
