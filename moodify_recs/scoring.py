"""
Scoring Engine
==============

Computes final scores for candidate tracks using a weighted combination of:
1. Taste match (library membership, artist affinity, genre overlap)
2. Mood match (weighted distance between audio features and mood targets)
3. Language match (classifier verdict, neutral when unconstrained)

Mathematical Formulation:
-------------------------

Final Score = 0.5 × S_taste + 0.4 × S_mood + 0.1 × S_lang

where:
    S_mood  = clip(1 - (0.35·dv + 0.35·de + 0.2·dd + 0.1·dt), 0, 1)
              dx = |feature - target|, dt = |tempo - target| / 60,
              an unknown term costs 0.6, no feature record at all gives 0.5
    S_taste = clip(0.5·library + 0.3·artist + 0.2·genre_ratio, 0, 1)
    S_lang  = 1 if accepted (or unconstrained) else 0

All score functions are pure. Ranking is a stable descending sort.

Also here: the per-mood hard gate used for the anchor coverage check, and
the text-only relevance pre-rank applied to raw search results.
"""

import datetime
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .config import DEFAULT_WEIGHTS, ScoringWeights
from .features import AudioFeatures, Enrichment, Track, track_from_spotify, track_key
from .language import Language, classifier_for
from .queries import mood_profile
from .taste import TasteProfile
from .vibe import MoodTargets, normalize_mood

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreBreakdown:
    """How a track's score was computed."""
    taste: float
    mood: float
    language: float
    final: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "taste": round(self.taste, 4),
            "mood": round(self.mood, 4),
            "language": round(self.language, 4),
            "final": round(self.final, 4),
        }


# =============================================================================
# COMPONENT SCORES
# =============================================================================

def mood_match(
    features: Optional[AudioFeatures],
    targets: MoodTargets,
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> float:
    """
    Similarity between a track's audio features and mood targets.

    Args:
        features: Track audio features (None when the catalog had none)
        targets: Resolved mood targets
        weights: Distance weights and penalties

    Returns:
        Score in [0, 1]
    """
    if features is None:
        return weights.neutral_mood_match

    penalty = weights.missing_feature_penalty

    def term(value: Optional[float], target: Optional[float], scale: float = 1.0) -> float:
        if value is None or target is None:
            return penalty
        return abs(value - target) / scale

    distances = np.array([
        term(features.valence, targets.valence),
        term(features.energy, targets.energy),
        term(features.danceability, targets.danceability),
        term(features.tempo, targets.tempo, weights.tempo_scale),
    ])
    w = np.array([weights.valence, weights.energy, weights.danceability, weights.tempo])
    return float(np.clip(1.0 - np.dot(w, distances), 0.0, 1.0))


def taste_match(
    track: Track,
    taste: TasteProfile,
    genres: Sequence[str],
    weights: ScoringWeights = DEFAULT_WEIGHTS,
) -> float:
    """
    How well a track fits the listener's history.

    Args:
        track: Candidate track
        taste: Listener profile (empty for anonymous requests)
        genres: Genres of the track's artists
        weights: Component weights and tiers

    Returns:
        Score in [0, 1]; 0 for an empty profile
    """
    library = 0.0
    track_id = track.spotify_id
    if track_id:
        if track_id in taste.top_track_ids:
            library = weights.top_track_tier
        elif track_id in taste.saved_track_ids:
            library = weights.saved_track_tier
        elif track_id in taste.recent_track_ids:
            library = weights.recent_track_tier

    artist = 0.0
    if track.primary_artist_id and track.primary_artist_id in taste.artist_ids:
        artist = weights.primary_artist_tier
    elif any(a in taste.artist_ids for a in track.artist_ids):
        artist = weights.any_artist_tier

    genre_ratio = 0.0
    if genres:
        taste_genres = {g.lower() for g in taste.genres}
        overlap = sum(1 for g in genres if g.lower() in taste_genres)
        genre_ratio = overlap / len(genres)

    score = (
        weights.library_weight * library
        + weights.artist_weight * artist
        + weights.genre_weight * genre_ratio
    )
    return float(np.clip(score, 0.0, 1.0))


def language_match(track: Track, language: Language, genres: Sequence[str]) -> float:
    """1.0 when the track is in the requested language (always, for ANY)."""
    classifier = classifier_for(language)
    if classifier is None:
        return 1.0
    return 1.0 if classifier.matches(track.title, track.artist, genres) else 0.0


# =============================================================================
# HARD MOOD GATE
# =============================================================================

def _known(*values: Optional[float]) -> bool:
    return all(v is not None for v in values)


HARD_GATES: Dict[str, Callable[[AudioFeatures], bool]] = {
    "Happy": lambda f: _known(f.valence, f.energy, f.tempo)
        and f.valence >= 0.6 and f.energy >= 0.5 and f.tempo >= 100,
    "Sad": lambda f: _known(f.valence, f.energy, f.tempo)
        and f.valence <= 0.4 and f.energy <= 0.6 and f.tempo <= 110,
    "Chill": lambda f: _known(f.energy, f.tempo)
        and f.energy <= 0.55 and f.tempo <= 105,
    "Energetic": lambda f: _known(f.energy, f.tempo)
        and f.energy >= 0.75 and f.tempo >= 118,
    "Romantic": lambda f: _known(f.valence, f.energy)
        and 0.5 <= f.valence <= 0.85 and f.energy <= 0.65,
    "Focus": lambda f: _known(f.energy, f.tempo)
        and f.energy <= 0.5 and 60 <= f.tempo <= 110,
}


def passes_hard_gate(mood: str, features: AudioFeatures) -> bool:
    """Strict threshold check for a mood; unknown moods always pass."""
    gate = HARD_GATES.get(normalize_mood(mood) or "")
    if gate is None:
        return True
    return bool(gate(features))


def mood_coverage(
    tracks: Sequence[Track],
    features: Mapping[str, AudioFeatures],
    mood: str,
) -> float:
    """
    Fraction of tracks that pass the mood's hard gate.

    Tracks without features count as misses. An empty list is fully
    covered; a list with no catalog IDs at all is not covered.
    """
    if not tracks:
        return 1.0
    if not any(t.spotify_id for t in tracks):
        return 0.0
    passed = 0
    for track in tracks:
        f = features.get(track.spotify_id) if track.spotify_id else None
        if f is not None and passes_hard_gate(mood, f):
            passed += 1
    return passed / len(tracks)


# =============================================================================
# RELEVANCE PRE-RANK
# =============================================================================

RECENT_YEARS = 10
MAX_CONTEXT_HITS = 3
MAX_TAG_HITS = 2


def _release_year(raw: Mapping[str, Any]) -> Optional[int]:
    release = str((raw.get("album") or {}).get("release_date") or "")
    if len(release) >= 4 and release[:4].isdigit():
        return int(release[:4])
    return None


def primary_artist_name(raw: Mapping[str, Any]) -> str:
    """Name of the first credited artist on a raw catalog track."""
    artists = [a for a in (raw.get("artists") or []) if isinstance(a, dict)]
    return str(artists[0].get("name") or "").strip() if artists else ""


def rank_by_relevance(
    raw_items: Sequence[Mapping[str, Any]],
    taste: TasteProfile,
    mood: str,
    context_keywords: Optional[Sequence[str]] = None,
    current_year: Optional[int] = None,
    artist_tags: Optional[Mapping[str, Sequence[str]]] = None,
) -> List[Track]:
    """
    Order raw search results by cheap text signals and map them to Tracks.

    Points:
        +1 an artist the listener follows
        +2 a mood keyword in the title or album name
        +1 a listener genre or tag in the title or album name
        +1 per context keyword hit, at most 3
        +1 released within the last 10 years
        +1 per primary-artist tag naming the mood or one of its genres, at most 2
        +1 per primary-artist tag shared with the listener's tags, at most 2
    Ties go to the more popular track. Duplicate (title, artist) pairs are
    dropped, keeping the first.

    Args:
        artist_tags: Community tags keyed by lower-cased primary artist name

    Returns:
        Tracks carrying a human-readable match reason
    """
    year_now = current_year or datetime.date.today().year
    profile = mood_profile(mood)
    keywords = [k.lower() for k in profile.keywords]
    mood_tags = set(keywords) | {g.lower() for g in profile.example_genres}
    listener_tags = {t.lower() for t in taste.tags if t}
    taste_terms = [t.lower() for t in list(taste.genres) + list(taste.tags) if t]
    taste_artists = {a.lower() for a in taste.artist_names}
    context = [c.lower() for c in (context_keywords or []) if c]

    scored: List[Tuple[int, float, Track]] = []
    seen = set()
    for raw in raw_items:
        names = [str(a.get("name") or "") for a in (raw.get("artists") or []) if isinstance(a, dict)]
        key = track_key(str(raw.get("name") or ""), ", ".join(names))
        if key in seen:
            continue
        seen.add(key)

        hay = f"{raw.get('name') or ''} {(raw.get('album') or {}).get('name') or ''}".lower()
        known_artist = any(n.lower() in taste_artists for n in names)
        keyword_hit = any(k in hay for k in keywords)
        taste_hit = any(t in hay for t in taste_terms)
        tagged = {t.lower() for t in (artist_tags or {}).get(primary_artist_name(raw).lower(), [])}
        mood_tag_hits = min(MAX_TAG_HITS, len(tagged & mood_tags))
        taste_tag_hits = min(MAX_TAG_HITS, len(tagged & listener_tags))

        points = 0
        points += 1 if known_artist else 0
        points += 2 if keyword_hit else 0
        points += 1 if taste_hit else 0
        points += min(MAX_CONTEXT_HITS, sum(1 for c in context if c in hay))
        year = _release_year(raw)
        if year and year_now - year <= RECENT_YEARS:
            points += 1
        points += mood_tag_hits + taste_tag_hits

        reasons = []
        if known_artist:
            reasons.append("similar to your artists")
        if keyword_hit:
            reasons.append("fits the mood keywords")
        if taste_hit:
            reasons.append("matches your genres")
        if mood_tag_hits:
            reasons.append("artist tagged with the mood")
        if taste_tag_hits:
            reasons.append("artist tags match your taste")
        reason = ", ".join(reasons) if reasons else "discovery for your mood"

        track = track_from_spotify(raw, match_reason=reason)
        if track is None:
            continue
        popularity = raw.get("popularity")
        scored.append((points, float(popularity) if isinstance(popularity, (int, float)) else 0.0, track))

    scored.sort(key=lambda item: (-item[0], -item[1]))
    return [track for _, _, track in scored]


# =============================================================================
# FINAL SCORING
# =============================================================================

class ScoringEngine:
    """
    Final scorer for the candidate pool.

    Usage:
        engine = ScoringEngine()
        ranked = engine.rank(tracks, enrichment, taste, targets, Language.ANY)
    """

    def __init__(self, weights: ScoringWeights = DEFAULT_WEIGHTS):
        """
        Initialize scoring engine with component weights.

        Args:
            weights: Scoring weights configuration
        """
        self.weights = weights

    def score(
        self,
        track: Track,
        features: Optional[AudioFeatures],
        taste: TasteProfile,
        targets: MoodTargets,
        language: Language,
        genres: Sequence[str] = (),
    ) -> ScoreBreakdown:
        """Score one track. Pure: same inputs, same breakdown."""
        w = self.weights
        taste_score = taste_match(track, taste, genres, w)
        mood_score = mood_match(features, targets, w)
        lang_score = language_match(track, language, genres)
        final = w.taste * taste_score + w.mood * mood_score + w.language * lang_score
        return ScoreBreakdown(taste=taste_score, mood=mood_score, language=lang_score, final=final)

    def rank(
        self,
        tracks: Sequence[Track],
        enrichment: Enrichment,
        taste: TasteProfile,
        targets: MoodTargets,
        language: Language,
    ) -> List[Tuple[Track, ScoreBreakdown]]:
        """
        Score and sort tracks, best first.

        Equal scores keep their input order.
        """
        if not tracks:
            return []
        breakdowns = [
            self.score(
                track,
                enrichment.features_for(track),
                taste,
                targets,
                language,
                enrichment.genres_for(track),
            )
            for track in tracks
        ]
        finals = np.array([b.final for b in breakdowns])
        order = np.argsort(-finals, kind="stable")
        return [(tracks[i], breakdowns[i]) for i in order]
