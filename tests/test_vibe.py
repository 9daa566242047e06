import pytest

from moodify_recs.config import MOOD_LABELS, NEUTRAL_TARGETS
from moodify_recs.vibe import (
    VIBE_RULES,
    analyze_prompt,
    classify_prompt,
    extract_vibe_signals,
    intensity,
    normalize_mood,
    resolve_mood_targets,
)


def test_rainy_cafe_prompt_resolves_to_chill():
    signals = analyze_prompt("a rainy day in a cozy cafe")

    assert signals.mood == "Chill"
    assert {"rain", "lofi", "ambient"} <= set(signals.keywords)
    assert signals.targets["energy"] == pytest.approx(0.35)
    assert signals.targets["tempo"] == pytest.approx(80)
    assert signals.tone == "reflective"
    assert signals.confirmation == "Got it. Rainy reflective vibes, right?"


def test_girlfriend_mad_prompt_is_heartbreak():
    signals = analyze_prompt("my girlfriend is mad at me")

    assert signals.mood == "Sad"
    assert signals.tone == "heartbroken"
    assert "heartbreak" in signals.keywords
    assert signals.targets["valence"] == pytest.approx(0.25)
    assert signals.targets["energy"] <= 0.45


def test_later_rules_override_mood():
    # focus runs after heartbreak in the rule order
    signals = extract_vibe_signals("we had an argument, now I need to study")
    assert signals.mood == "Focus"
    assert signals.tone == "focused"


def test_caps_compose_with_min():
    # rainy caps energy at 0.35, lonely caps at 0.45; the lower one wins
    signals = extract_vibe_signals("rain and feeling lonely")
    assert signals.targets["energy"] == pytest.approx(0.35)
    assert signals.tone == "reflective"


def test_floors_compose_with_max():
    signals = extract_vibe_signals("so so angry!!")
    assert signals.mood == "Energetic"
    assert signals.targets["energy"] == pytest.approx(0.92)
    assert signals.targets["tempo"] == pytest.approx(132)


def test_keywords_are_unique_and_capped():
    signals = extract_vibe_signals("rain, breakup, nostalgia, study, party, lonely")
    assert len(signals.keywords) == len(set(signals.keywords))
    assert len(signals.keywords) <= 8


def test_plain_prompt_keeps_fallback_mood_and_no_targets():
    signals = extract_vibe_signals("just some music", fallback_mood="Romantic")
    assert signals.mood == "Romantic"
    assert signals.targets is None
    assert signals.keywords == []
    assert signals.confirmation == "Got it. romantic vibes, right?"


def test_rules_are_named_in_order():
    assert [r.name for r in VIBE_RULES][:3] == ["rainy", "heartbreak", "nostalgic"]


def test_intensity_counts_marks_and_words():
    assert intensity("really happy!!") == 3
    assert intensity("calm") == 0


@pytest.mark.parametrize("prompt,mood", [
    ("cozy lofi evening", "Chill"),
    ("feeling blue", "Sad"),
    ("date night", "Romantic"),
    ("deep work session", "Focus"),
    ("edm please", "Energetic"),
    ("something nice", "Happy"),
])
def test_classify_prompt(prompt, mood):
    assert classify_prompt(prompt) == mood


def test_normalize_mood():
    assert normalize_mood(" chill ") == "Chill"
    assert normalize_mood("grumpy") is None
    assert normalize_mood(None) is None


@pytest.mark.parametrize("mood", list(MOOD_LABELS) + ["grumpy", None])
def test_targets_always_resolved(mood):
    targets = resolve_mood_targets(mood)
    for value in (targets.valence, targets.energy, targets.danceability):
        assert 0.0 <= value <= 1.0


def test_unknown_mood_gets_neutral_targets():
    targets = resolve_mood_targets("grumpy")
    assert targets.valence == NEUTRAL_TARGETS["valence"]
    assert targets.energy == NEUTRAL_TARGETS["energy"]


def test_overrides_replace_fields():
    targets = resolve_mood_targets("Happy", {"energy": 0.2, "valence": None})
    assert targets.energy == pytest.approx(0.2)
    assert targets.valence == pytest.approx(0.8)
