import random

import pytest

from moodify_recs.explainer import COMFORT_MESSAGES, ExplanationGenerator, comfort_bucket, pick_comfort_message
from moodify_recs.features import AudioFeatures, Track
from moodify_recs.scoring import ScoreBreakdown
from moodify_recs.taste import TasteProfile
from moodify_recs.vibe import analyze_prompt, resolve_mood_targets


@pytest.mark.parametrize("prompt,bucket", [
    ("my girlfriend is mad at me", "sad"),
    ("a rainy day in a cozy cafe", "reflective"),
    ("remember the 90s", "nostalgic"),
    ("need to study tonight", "focus"),
    ("so angry", "angry"),
    ("birthday party", "celebratory"),
])
def test_comfort_bucket_from_tone(prompt, bucket):
    signals = analyze_prompt(prompt)
    assert comfort_bucket(signals, signals.mood) == bucket


@pytest.mark.parametrize("mood,bucket", [
    ("Sad", "sad"),
    ("Focus", "focus"),
    ("Happy", "celebratory"),
    ("Chill", "chill"),
    ("Romantic", "romantic"),
    ("Energetic", "energetic"),
    ("Grumpy", "generic"),
])
def test_comfort_bucket_from_mood(mood, bucket):
    assert comfort_bucket(None, mood) == bucket


def test_pick_comfort_message_from_bucket():
    message = pick_comfort_message(None, "Chill", random.Random(0))
    assert message in COMFORT_MESSAGES["chill"]


def test_explain_history_and_sound():
    explainer = ExplanationGenerator()
    track = Track("Song", "Someone", spotify_id="t1", artist_ids=["a1"])
    taste = TasteProfile(saved_track_ids=frozenset({"t1"}))
    features = AudioFeatures("t1", valence=0.82, energy=0.2, danceability=0.9)
    breakdown = ScoreBreakdown(taste=0.45, mood=0.7, language=1.0, final=0.6)

    reason = explainer.explain(track, breakdown, features, taste, resolve_mood_targets("Happy"))
    assert reason == "from your saved tracks, the right emotional tone"


def test_explain_falls_back_to_discovery():
    explainer = ExplanationGenerator()
    track = Track("Song", "Someone", spotify_id="t1")
    breakdown = ScoreBreakdown(taste=0.0, mood=0.3, language=1.0, final=0.22)

    reason = explainer.explain(track, breakdown, None, TasteProfile(), resolve_mood_targets("Sad"))
    assert reason == "discovery for your mood"


def test_explain_known_artist():
    explainer = ExplanationGenerator()
    track = Track("Song", "Someone", spotify_id="t9", artist_ids=["a1"])
    taste = TasteProfile(artist_ids=frozenset({"a1"}))
    breakdown = ScoreBreakdown(taste=0.3, mood=0.4, language=1.0, final=0.41)

    reason = explainer.explain(track, breakdown, None, taste, resolve_mood_targets("Sad"))
    assert reason == "by an artist you listen to"
