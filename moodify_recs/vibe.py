"""
Vibe Extraction Module
======================

Turns a free-text prompt into structured mood signals.

Rules run in a fixed order and each rule's effect is a pure function
VibeDraft -> VibeDraft. The order is part of the contract:

    1. rainy       rain / storm / monsoon
    2. heartbreak  break-ups, arguments, "mad at me"
    3. nostalgic   memories, retro decades
    4. angry       anger words
    5. focus       study / work / coding
    6. party       party / dance / celebrations
    7. lonely      loneliness, crying, sadness
    8. intensity   exclamation marks + intensifier words >= 2

A later rule may replace the mood an earlier rule picked. Target changes
are clamps (min for ceilings, max for floors) so rules compose, except
where a rule pins an exact value.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Mapping, Optional, Pattern, Tuple

from .config import DEFAULT_MOOD, MOOD_LABELS, MOOD_TARGETS, NEUTRAL_TARGETS

NEUTRAL_TONE = "neutral"
MAX_KEYWORDS = 8
INTENSITY_THRESHOLD = 2

_INTENSIFIERS = re.compile(r"\b(very|so|really|super|extremely)\b")


@dataclass(frozen=True)
class MoodTargets:
    """Fully resolved audio targets for a mood."""
    valence: float
    energy: float
    danceability: float
    tempo: Optional[float] = None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {
            "valence": self.valence,
            "energy": self.energy,
            "danceability": self.danceability,
            "tempo": self.tempo,
        }


@dataclass(frozen=True)
class VibeDraft:
    """Signals accumulated while the rules run."""
    mood: str
    energy: str = "mid"
    tone: str = NEUTRAL_TONE
    keywords: Tuple[str, ...] = ()
    targets: Mapping[str, float] = field(default_factory=dict)
    contexts: Tuple[str, ...] = ()


@dataclass(frozen=True)
class VibeSignals:
    """Structured reading of a prompt."""
    mood: str
    energy: str
    tone: str
    keywords: List[str]
    targets: Optional[Dict[str, float]]
    confirmation: str
    contexts: Tuple[str, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "mood": self.mood,
            "energy": self.energy,
            "tone": self.tone,
            "keywords": list(self.keywords),
            "targets": dict(self.targets) if self.targets else None,
            "confirmation": self.confirmation,
        }


@dataclass(frozen=True)
class VibeRule:
    """One (predicate, effect) step of the extractor."""
    name: str
    predicate: Callable[[str], bool]
    effect: Callable[[VibeDraft], VibeDraft]


# =============================================================================
# DRAFT HELPERS
# =============================================================================

def _add_keywords(draft: VibeDraft, *words: str) -> VibeDraft:
    return replace(draft, keywords=draft.keywords + words)


def _cap(draft: VibeDraft, name: str, ceiling: float) -> VibeDraft:
    current = draft.targets.get(name)
    value = ceiling if current is None else min(current, ceiling)
    return replace(draft, targets={**draft.targets, name: value})


def _floor(draft: VibeDraft, name: str, floor: float) -> VibeDraft:
    current = draft.targets.get(name)
    value = floor if current is None else max(current, floor)
    return replace(draft, targets={**draft.targets, name: value})


def _pin(draft: VibeDraft, name: str, value: float) -> VibeDraft:
    return replace(draft, targets={**draft.targets, name: value})


def _tone_if_unset(draft: VibeDraft, tone: str) -> VibeDraft:
    if draft.tone != NEUTRAL_TONE:
        return draft
    return replace(draft, tone=tone)


def _matches(pattern: str) -> Callable[[str], bool]:
    compiled: Pattern = re.compile(pattern)
    return lambda text: bool(compiled.search(text))


def intensity(text: str) -> int:
    """Exclamation marks plus intensifier words."""
    return text.count("!") + len(_INTENSIFIERS.findall(text))


# =============================================================================
# RULE EFFECTS
# =============================================================================

def _rainy(draft: VibeDraft) -> VibeDraft:
    draft = replace(draft, contexts=draft.contexts + ("rainy",))
    draft = _add_keywords(draft, "rain", "lofi", "ambient")
    draft = _cap(_cap(draft, "energy", 0.35), "tempo", 80)
    return _tone_if_unset(draft, "reflective")


def _heartbreak(draft: VibeDraft) -> VibeDraft:
    draft = replace(draft, mood="Sad", tone="heartbroken")
    draft = _add_keywords(draft, "heartbreak", "emotional", "ballad", "r&b")
    return _cap(_pin(draft, "valence", 0.25), "energy", 0.45)


def _nostalgic(draft: VibeDraft) -> VibeDraft:
    mood = "Chill" if draft.mood == "Energetic" else draft.mood
    draft = replace(draft, mood=mood, tone="nostalgic")
    draft = _add_keywords(draft, "nostalgia", "retro", "lofi", "synthwave")
    return _cap(_cap(draft, "energy", 0.5), "tempo", 95)


def _angry(draft: VibeDraft) -> VibeDraft:
    draft = replace(draft, mood="Energetic", energy="high", tone="angry")
    draft = _add_keywords(draft, "rock", "edm", "trap")
    return _floor(_floor(draft, "energy", 0.85), "tempo", 125)


def _focus(draft: VibeDraft) -> VibeDraft:
    draft = replace(draft, mood="Focus", energy="low", tone="focused")
    draft = _add_keywords(draft, "instrumental", "lofi", "ambient")
    draft = _pin(_cap(draft, "energy", 0.35), "valence", 0.5)
    return _cap(draft, "tempo", 100)


def _party(draft: VibeDraft) -> VibeDraft:
    draft = replace(draft, mood="Energetic", energy="high", tone="celebratory")
    draft = _add_keywords(draft, "dance", "party")
    draft = _floor(_floor(draft, "valence", 0.8), "energy", 0.85)
    return _floor(draft, "tempo", 120)


def _lonely(draft: VibeDraft) -> VibeDraft:
    draft = _tone_if_unset(replace(draft, mood="Sad"), "sad")
    draft = _add_keywords(draft, "piano", "acoustic")
    return _cap(_cap(draft, "valence", 0.25), "energy", 0.45)


def _intense(draft: VibeDraft) -> VibeDraft:
    if draft.mood == "Sad":
        return _cap(_cap(draft, "energy", 0.3), "tempo", 75)
    if draft.mood == "Energetic":
        return _floor(_floor(draft, "energy", 0.92), "tempo", 132)
    return draft


VIBE_RULES: Tuple[VibeRule, ...] = (
    VibeRule("rainy", _matches(r"rain|raining|storm|monsoon"), _rainy),
    VibeRule(
        "heartbreak",
        _matches(
            r"break.?up|heartbreak|heartbroken|girlfriend .*mad|boyfriend .*mad"
            r"|fight|argument|arguing|mad at me"
        ),
        _heartbreak,
    ),
    VibeRule(
        "nostalgic",
        _matches(r"nostalgic|nostalgia|remember|missing|old times|retro|90s|80s|2000s"),
        _nostalgic,
    ),
    VibeRule("angry", _matches(r"angry|furious|rage|pissed"), _angry),
    VibeRule(
        "focus",
        _matches(r"study|focus|work|coding|deep work|concentrate|instrumental"),
        _focus,
    ),
    VibeRule("party", _matches(r"party|dance|club|celebrat|birthday|wedding"), _party),
    VibeRule("lonely", _matches(r"lonely|alone|cry|tears|blue|depress|sad"), _lonely),
    VibeRule("intensity", lambda text: intensity(text) >= INTENSITY_THRESHOLD, _intense),
)


# =============================================================================
# PUBLIC API
# =============================================================================

# Coarse first pass used when only a prompt is supplied
_PROMPT_MOODS: Tuple[Tuple[Pattern, str], ...] = (
    (re.compile(r"rain|calm|lofi|cozy|chill|ambient"), "Chill"),
    (re.compile(r"sad|melancholy|blue|cry|ballad"), "Sad"),
    (re.compile(r"love|romance|date|heart"), "Romantic"),
    (re.compile(r"study|focus|work|deep|instrumental"), "Focus"),
    (re.compile(r"party|upbeat|club|energy|energetic|edm|rock|dance"), "Energetic"),
)


def normalize_mood(label: Optional[str]) -> Optional[str]:
    """Case-insensitive lookup of a mood label; None when unknown."""
    wanted = (label or "").strip().lower()
    for mood in MOOD_LABELS:
        if mood.lower() == wanted:
            return mood
    return None


def classify_prompt(prompt: str) -> str:
    """Pick a starting mood for a prompt from a few keyword families."""
    text = (prompt or "").lower()
    for pattern, mood in _PROMPT_MOODS:
        if pattern.search(text):
            return mood
    return DEFAULT_MOOD


def extract_vibe_signals(
    prompt: str,
    fallback_mood: str = DEFAULT_MOOD,
    rules: Tuple[VibeRule, ...] = VIBE_RULES,
) -> VibeSignals:
    """
    Run the ordered rules over a prompt.

    Args:
        prompt: Free-text description of the listener's vibe
        fallback_mood: Mood used when no rule picks one
        rules: Ordered rule list (defaults to VIBE_RULES)

    Returns:
        VibeSignals with at most 8 unique keywords
    """
    text = (prompt or "").lower()
    draft = VibeDraft(mood=normalize_mood(fallback_mood) or DEFAULT_MOOD)
    for rule in rules:
        if rule.predicate(text):
            draft = rule.effect(draft)

    keywords = list(dict.fromkeys(draft.keywords))[:MAX_KEYWORDS]
    rainy = "Rainy " if "rainy" in draft.contexts else ""
    label = draft.tone if draft.tone != NEUTRAL_TONE else draft.mood.lower()

    return VibeSignals(
        mood=draft.mood,
        energy=draft.energy,
        tone=draft.tone,
        keywords=keywords,
        targets=dict(draft.targets) or None,
        confirmation=f"Got it. {rainy}{label} vibes, right?",
        contexts=draft.contexts,
    )


def analyze_prompt(prompt: str, mood: Optional[str] = None) -> VibeSignals:
    """Classify a prompt (unless a mood is given) and extract its signals."""
    fallback = normalize_mood(mood) or classify_prompt(prompt)
    return extract_vibe_signals(prompt, fallback)


def resolve_mood_targets(
    mood: Optional[str],
    overrides: Optional[Mapping[str, Optional[float]]] = None,
) -> MoodTargets:
    """
    Resolve the audio targets for a mood.

    Args:
        mood: Mood label (unknown labels get neutral targets)
        overrides: Per-field values from vibe signals; None values ignored

    Returns:
        MoodTargets with valence, energy and danceability always set
    """
    base = dict(MOOD_TARGETS.get(normalize_mood(mood) or "", NEUTRAL_TARGETS))
    for name, value in (overrides or {}).items():
        if name in base and value is not None:
            base[name] = float(value)

    return MoodTargets(
        valence=float(base["valence"] if base.get("valence") is not None else NEUTRAL_TARGETS["valence"]),
        energy=float(base["energy"] if base.get("energy") is not None else NEUTRAL_TARGETS["energy"]),
        danceability=float(
            base["danceability"] if base.get("danceability") is not None else NEUTRAL_TARGETS["danceability"]
        ),
        tempo=float(base["tempo"]) if base.get("tempo") is not None else None,
    )
