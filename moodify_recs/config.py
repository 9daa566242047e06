"""
Configuration and constants for Moodify Recs recommendation system.
"""
import os
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

# =============================================================================
# SPOTIFY API CONFIGURATION
# =============================================================================
SPOTIFY_CLIENT_ID = os.environ.get("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET = os.environ.get("SPOTIFY_CLIENT_SECRET", "")
SPOTIFY_TRACK_URL = "https://open.spotify.com/track/{track_id}"

# Spotify API limits
SEARCH_LIMIT_MAX = 50
AUDIO_FEATURES_BATCH = 80
ARTISTS_BATCH = 50
RECOMMENDATION_SEEDS_MAX = 5
RECOMMENDATIONS_LIMIT_MAX = 20

# =============================================================================
# MUSICBRAINZ CONFIGURATION
# =============================================================================
MUSICBRAINZ_BASE_URL = "https://musicbrainz.org/ws/2"
LISTENBRAINZ_BASE_URL = "https://api.listenbrainz.org/1"
MOODIFY_USER_AGENT = os.environ.get(
    "MOODIFY_USER_AGENT", "Moodify/1.0 (playlist generator)"
)

# =============================================================================
# REQUEST HANDLING
# =============================================================================
REQUEST_DEADLINE_SECONDS = float(os.environ.get("MOODIFY_REQUEST_DEADLINE", "25"))
USER_TOKEN_COOKIE = "spotify_access_token"
PORT = int(os.environ.get("PORT", "8000"))


@dataclass
class FetchConfig:
    """Timeouts, retries and concurrency for external calls."""
    # Hard timeout for one HTTP call (seconds)
    request_timeout: float = 5.0

    # Retries after the first attempt
    max_retries: int = 2

    # Exponential backoff: base * multiplier ** attempt
    backoff_base: float = 0.4
    backoff_multiplier: float = 2.0

    # Upper bound on a server-supplied Retry-After wait
    max_retry_after: float = 10.0

    # Worker pool size for concurrent fetches
    workers: int = 4

    # Tag service calls are slower and rate-limited harder
    tag_request_timeout: float = 10.0
    tag_workers: int = 4

DEFAULT_FETCH_CONFIG = FetchConfig()

# =============================================================================
# CANDIDATE GENERATION CONFIGURATION
# =============================================================================
@dataclass
class CandidateConfig:
    """Configuration for candidate track generation."""
    # Results requested per search query
    per_query_limit: int = 8

    # Total raw search results kept
    pool_cap: int = 100

    # Personalized anchors
    anchor_artists: int = 6
    top_tracks_per_artist: int = 2
    anchor_top_tracks_cap: int = 10
    anchor_recommendations: int = 15

    # Related-artist expansion when anchors miss the mood
    min_mood_coverage: float = 0.35
    related_seed_artists: int = 8
    related_artists_cap: int = 20
    related_recommendations: int = 20

    # Below this many tracks the fallbacks kick in
    min_pool_size: int = 10

    # Tag-based recordings used to pad a thin pool
    tag_recordings: int = 25
    tag_recordings_resolved: int = 12

    # Order tag recordings by ListenBrainz listen counts before resolving
    tag_popularity: bool = True

    # Primary artists whose MusicBrainz tags feed the relevance pre-rank
    tag_pass_artists: int = 30

    # Generic mood search fallback
    mood_search_limit: int = 10

    # Language padding
    language_pad_cap: int = 60
    language_pad_target: int = 15

    # Diversifier output size
    combine_total: int = 25

    # Final playlist size
    final_max: int = 15

DEFAULT_CANDIDATE_CONFIG = CandidateConfig()

# =============================================================================
# SCORING WEIGHTS
# =============================================================================
@dataclass
class ScoringWeights:
    """Weights for the final match score."""
    taste: float = 0.5
    mood: float = 0.4
    language: float = 0.1

    # Mood distance weights across audio features
    valence: float = 0.35
    energy: float = 0.35
    danceability: float = 0.2
    tempo: float = 0.1

    # Distance used when a feature is unknown
    missing_feature_penalty: float = 0.6

    # Mood match when no feature record exists at all
    neutral_mood_match: float = 0.5

    # BPM difference that counts as a full unit of distance
    tempo_scale: float = 60.0

    # Taste match components
    library_weight: float = 0.5
    artist_weight: float = 0.3
    genre_weight: float = 0.2

    # Library membership tiers
    top_track_tier: float = 1.0
    saved_track_tier: float = 0.9
    recent_track_tier: float = 0.7

    # Artist affinity tiers
    primary_artist_tier: float = 1.0
    any_artist_tier: float = 0.7

DEFAULT_WEIGHTS = ScoringWeights()

# =============================================================================
# TASTE PROFILE CONFIGURATION
# =============================================================================
@dataclass
class TasteConfig:
    """Page sizes and caps for listener history."""
    top_artists: int = 20
    top_tracks: int = 20
    saved_tracks: int = 50
    recent_tracks: int = 50
    max_genres: int = 12
    max_tags: int = 12
    tag_artists: int = 8

    # Personalization seeds
    seed_top_artists: int = 10
    seed_top_tracks: int = 20
    seed_recent_tracks: int = 10

DEFAULT_TASTE_CONFIG = TasteConfig()

# =============================================================================
# CACHING CONFIGURATION
# =============================================================================
@dataclass
class CacheConfig:
    """Time-to-live for the in-process caches (seconds)."""
    genre_seeds_ttl: float = 12 * 60 * 60
    personal_seeds_ttl: float = 10 * 60
    artist_tags_ttl: float = 12 * 60 * 60

DEFAULT_CACHE_CONFIG = CacheConfig()

# =============================================================================
# MOODS
# =============================================================================
MOOD_LABELS: Tuple[str, ...] = ("Happy", "Sad", "Chill", "Energetic", "Romantic", "Focus")
DEFAULT_MOOD = "Happy"

# Target audio characteristics per mood (valence, energy, danceability, tempo)
MOOD_TARGETS: Dict[str, Dict[str, Optional[float]]] = {
    "Happy": {"valence": 0.8, "energy": 0.7, "danceability": 0.6, "tempo": 110.0},
    "Sad": {"valence": 0.2, "energy": 0.3, "danceability": 0.3, "tempo": 80.0},
    "Chill": {"valence": 0.4, "energy": 0.4, "danceability": 0.4, "tempo": 90.0},
    "Energetic": {"valence": 0.7, "energy": 0.9, "danceability": 0.7, "tempo": 125.0},
    "Romantic": {"valence": 0.6, "energy": 0.5, "danceability": 0.5, "tempo": 95.0},
    "Focus": {"valence": 0.5, "energy": 0.35, "danceability": 0.4, "tempo": 95.0},
}
NEUTRAL_TARGETS = {"valence": 0.6, "energy": 0.6, "danceability": 0.6, "tempo": 110.0}


@dataclass(frozen=True)
class MoodProfile:
    """Search vocabulary associated with a mood."""
    keywords: List[str] = field(default_factory=list)
    example_genres: List[str] = field(default_factory=list)

MOOD_PROFILES: Dict[str, MoodProfile] = {
    "Happy": MoodProfile(
        ["upbeat", "joyful", "bright", "lively", "feel good"],
        ["pop", "indie pop", "funk", "dance"],
    ),
    "Sad": MoodProfile(
        ["emotional", "mellow", "soft", "slow", "ballad"],
        ["acoustic", "piano", "soul", "emo"],
    ),
    "Chill": MoodProfile(
        ["relaxing", "calm", "ambient", "lo-fi", "downtempo"],
        ["chillhop", "downtempo", "electronic", "lofi"],
    ),
    "Energetic": MoodProfile(
        ["fast", "driving", "hype", "intense", "club"],
        ["edm", "rock", "trap", "punk"],
    ),
    "Focus": MoodProfile(
        ["minimal", "instrumental", "ambient", "smooth", "study"],
        ["lo-fi", "classical", "soft electronic", "piano"],
    ),
    "Romantic": MoodProfile(
        ["soft", "warm", "melodic", "heartfelt", "love"],
        ["r&b", "soul", "acoustic pop", "romance"],
    ),
}

# Recommendation seed genres per mood (valid Spotify genre seeds)
MOOD_TO_SEEDS: Dict[str, List[str]] = {
    "Happy": ["pop", "dance", "party"],
    "Chill": ["chill", "ambient", "study", "sleep"],
    "Sad": ["sad", "acoustic", "piano"],
    "Energetic": ["edm", "rock", "work-out", "dance"],
    "Romantic": ["romance", "soul", "r-n-b"],
    "Focus": ["study", "ambient", "piano"],
}

# Used when the available-genre-seeds endpoint is unreachable
SAFE_GENRE_SEEDS = [
    "pop", "rock", "dance", "edm", "chill",
    "hip-hop", "indie", "acoustic", "soul", "r-n-b",
]

# Broad search query per mood, tolerant to genre wording
MOOD_TO_QUERY: Dict[str, str] = {
    "Happy": "pop OR dance OR party",
    "Chill": "chill OR ambient OR lofi OR study OR sleep",
    "Sad": "sad OR acoustic OR piano OR ballad",
    "Energetic": "edm OR rock OR dance OR upbeat OR workout",
    "Romantic": 'romance OR "love song" OR soul OR "r&b"',
    "Focus": "study OR instrumental OR ambient OR piano",
}
DEFAULT_MOOD_QUERY = 'genre:"pop"'

# =============================================================================
# OUTPUT CONFIGURATION
# =============================================================================
DEFAULT_MARKET = "US"
OUTPUT_FORMAT = "json"  # json or simple
