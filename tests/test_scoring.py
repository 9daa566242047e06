import random

import pytest

from moodify_recs.features import AudioFeatures, Enrichment, Track
from moodify_recs.language import Language
from moodify_recs.scoring import (
    ScoringEngine,
    language_match,
    mood_coverage,
    mood_match,
    passes_hard_gate,
    rank_by_relevance,
    taste_match,
)
from moodify_recs.taste import TasteProfile
from moodify_recs.vibe import MoodTargets, resolve_mood_targets

from conftest import raw_track

HAPPY = resolve_mood_targets("Happy")


def make_track(track_id="t1", title="Song", artist="Someone", artist_ids=("a1",)):
    return Track(
        title=title,
        artist=artist,
        spotify_id=track_id,
        artist_ids=list(artist_ids),
        primary_artist_id=artist_ids[0] if artist_ids else None,
    )


# =============================================================================
# MOOD MATCH
# =============================================================================

def test_perfect_mood_match():
    f = AudioFeatures("t1", valence=0.8, energy=0.7, danceability=0.6, tempo=110.0)
    assert mood_match(f, HAPPY) == pytest.approx(1.0)


def test_no_features_is_neutral():
    assert mood_match(None, HAPPY) == pytest.approx(0.5)


def test_missing_terms_cost_the_penalty():
    f = AudioFeatures("t1", valence=0.8, energy=0.7, danceability=0.6, tempo=None)
    # only the tempo term is unknown: 1 - 0.1 * 0.6
    assert mood_match(f, HAPPY) == pytest.approx(0.94)


def test_missing_tempo_target_costs_the_penalty():
    f = AudioFeatures("t1", valence=0.8, energy=0.7, danceability=0.6, tempo=110.0)
    targets = MoodTargets(valence=0.8, energy=0.7, danceability=0.6, tempo=None)
    assert mood_match(f, targets) == pytest.approx(0.94)


def test_tempo_distance_is_scaled():
    f = AudioFeatures("t1", valence=0.8, energy=0.7, danceability=0.6, tempo=170.0)
    assert mood_match(f, HAPPY) == pytest.approx(0.9)


def test_mood_match_is_clamped():
    f = AudioFeatures("t1", valence=0.0, energy=0.0, danceability=0.0, tempo=400.0)
    assert mood_match(f, HAPPY) == 0.0


# =============================================================================
# TASTE MATCH
# =============================================================================

def test_empty_taste_scores_zero():
    assert taste_match(make_track(), TasteProfile(), ["pop"]) == 0.0


def test_library_tier_takes_highest_only():
    taste = TasteProfile(
        top_track_ids=frozenset({"t1"}),
        saved_track_ids=frozenset({"t1"}),
    )
    assert taste_match(make_track(), taste, []) == pytest.approx(0.5)


def test_recent_and_secondary_artist():
    taste = TasteProfile(
        recent_track_ids=frozenset({"t1"}),
        artist_ids=frozenset({"a2"}),
    )
    track = make_track(artist_ids=("a1", "a2"))
    assert taste_match(track, taste, []) == pytest.approx(0.5 * 0.7 + 0.3 * 0.7)


def test_genre_ratio():
    taste = TasteProfile(genres=("indie pop", "rock"))
    track = make_track()
    assert taste_match(track, taste, ["Indie Pop", "jazz"]) == pytest.approx(0.2 * 0.5)


def test_full_taste_match():
    taste = TasteProfile(
        top_track_ids=frozenset({"t1"}),
        artist_ids=frozenset({"a1"}),
        genres=("pop",),
    )
    assert taste_match(make_track(), taste, ["pop"]) == pytest.approx(1.0)


# =============================================================================
# LANGUAGE MATCH / ENGINE
# =============================================================================

def test_any_language_always_matches():
    track = make_track(title="دل", artist="گلوکار")
    assert language_match(track, Language.ANY, []) == 1.0


def test_english_language_match():
    assert language_match(make_track(title="Hello"), Language.ENGLISH, []) == 1.0
    assert language_match(make_track(title="Hello"), Language.ENGLISH, ["pakistani pop"]) == 0.0


def test_anonymous_score_driven_by_mood_and_language():
    engine = ScoringEngine()
    f = AudioFeatures("t1", valence=0.8, energy=0.7, danceability=0.6, tempo=110.0)
    breakdown = engine.score(make_track(), f, TasteProfile(), HAPPY, Language.ANY, ["pop"])

    assert breakdown.taste == 0.0
    assert breakdown.final == pytest.approx(0.4 * 1.0 + 0.1 * 1.0)


def test_score_is_deterministic():
    engine = ScoringEngine()
    rng = random.Random(3)
    taste = TasteProfile(artist_ids=frozenset({"a1"}), genres=("pop",))
    for _ in range(25):
        f = AudioFeatures(
            "t1",
            valence=rng.random(),
            energy=rng.random(),
            danceability=rng.random(),
            tempo=rng.uniform(60, 180),
        )
        first = engine.score(make_track(), f, taste, HAPPY, Language.ENGLISH, ["pop"])
        second = engine.score(make_track(), f, taste, HAPPY, Language.ENGLISH, ["pop"])
        assert first == second


def test_rank_is_descending_and_stable():
    engine = ScoringEngine()
    tracks = [make_track(track_id=f"t{i}", title=f"Song {i}") for i in range(4)]
    features = {
        "t0": AudioFeatures("t0", valence=0.1, energy=0.1, danceability=0.1, tempo=60.0),
        "t1": AudioFeatures("t1", valence=0.8, energy=0.7, danceability=0.6, tempo=110.0),
    }
    ranked = engine.rank(tracks, Enrichment(features=features), TasteProfile(), HAPPY, Language.ANY)

    ids = [t.spotify_id for t, _ in ranked]
    assert ids[0] == "t1"
    # t2 and t3 have no features and tie; input order is kept
    assert ids.index("t2") < ids.index("t3")
    finals = [b.final for _, b in ranked]
    assert finals == sorted(finals, reverse=True)


def test_rank_empty():
    assert ScoringEngine().rank([], Enrichment(), TasteProfile(), HAPPY, Language.ANY) == []


# =============================================================================
# HARD GATE
# =============================================================================

def test_hard_gates():
    happy = AudioFeatures("t", valence=0.7, energy=0.6, tempo=120.0)
    sad = AudioFeatures("t", valence=0.2, energy=0.3, tempo=80.0)
    assert passes_hard_gate("Happy", happy)
    assert not passes_hard_gate("Happy", sad)
    assert passes_hard_gate("Sad", sad)
    assert not passes_hard_gate("Energetic", sad)


def test_hard_gate_unknown_feature_fails():
    assert not passes_hard_gate("Chill", AudioFeatures("t", energy=0.3, tempo=None))


def test_unknown_mood_passes_gate():
    assert passes_hard_gate("Grumpy", AudioFeatures("t"))


def test_mood_coverage():
    tracks = [make_track(track_id="a"), make_track(track_id="b", title="Other")]
    features = {"a": AudioFeatures("a", valence=0.2, energy=0.3, tempo=80.0)}
    assert mood_coverage(tracks, features, "Sad") == pytest.approx(0.5)
    assert mood_coverage([], features, "Sad") == 1.0
    assert mood_coverage([make_track(track_id=None)], features, "Sad") == 0.0


# =============================================================================
# RELEVANCE PRE-RANK
# =============================================================================

def test_relevance_points_and_reasons():
    taste = TasteProfile(artist_names=("Known Artist",), genres=("lofi",))
    raw = [
        raw_track("1", "Plain Song", artist="Nobody", release_date="1990-01-01", popularity=90),
        raw_track("2", "Upbeat Morning", artist="Nobody", release_date="1990-01-01"),
        raw_track("3", "Another", artist="Known Artist", release_date="1990-01-01"),
    ]
    ranked = rank_by_relevance(raw, taste, "Happy", current_year=2024)

    assert [t.spotify_id for t in ranked] == ["2", "3", "1"]
    assert ranked[0].match_reason == "fits the mood keywords"
    assert ranked[1].match_reason == "similar to your artists"
    assert ranked[2].match_reason == "discovery for your mood"


def test_relevance_ties_broken_by_popularity_and_recency_counts():
    raw = [
        raw_track("old", "Song A", release_date="1990", popularity=99),
        raw_track("new", "Song B", release_date="2020-05-01", popularity=10),
        raw_track("pop", "Song C", release_date="1991", popularity=50),
    ]
    ranked = rank_by_relevance(raw, TasteProfile(), "Happy", current_year=2024)
    assert [t.spotify_id for t in ranked] == ["new", "old", "pop"]


def test_relevance_context_keywords():
    raw = [
        raw_track("1", "Quiet Song", release_date="1990"),
        raw_track("2", "Rain on Lofi Street", release_date="1990"),
    ]
    ranked = rank_by_relevance(raw, TasteProfile(), "Sad", ["rain", "lofi"], current_year=2024)
    assert ranked[0].spotify_id == "2"


def test_relevance_drops_duplicate_pairs():
    raw = [
        raw_track("us", "Neon Dreams", artist="Luna Vibe"),
        raw_track("pk", "neon dreams ", artist="LUNA VIBE"),
    ]
    ranked = rank_by_relevance(raw, TasteProfile(), "Happy", current_year=2024)
    assert len(ranked) == 1


def test_relevance_artist_tag_overlap_is_capped():
    taste = TasteProfile(tags=("jazz hop",))
    raw = [
        raw_track("1", "Plain Song", artist="Plain", release_date="1990", popularity=90),
        raw_track("2", "Aruarian Dance", artist="Nujabes", release_date="1990", popularity=50),
        raw_track("3", "Awake", artist="Tycho", release_date="1990", popularity=50),
        raw_track("4", "Calm Waters", artist="Someone", release_date="1990", popularity=99),
    ]
    artist_tags = {
        "nujabes": ["lo-fi", "chillhop", "ambient", "jazz hop"],
        "tycho": ["downtempo"],
        "someone": ["jazz hop"],
    }
    ranked = rank_by_relevance(raw, taste, "Chill", current_year=2024, artist_tags=artist_tags)

    assert [t.spotify_id for t in ranked] == ["4", "2", "3", "1"]
    assert ranked[1].match_reason == "artist tagged with the mood, artist tags match your taste"
    assert ranked[2].match_reason == "artist tagged with the mood"
