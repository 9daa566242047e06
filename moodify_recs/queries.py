"""
Query Builder
=============

Turns taste, mood and vibe signals into ordered, de-duplicated catalog
search queries using field-scoped syntax (genre:"x" keyword,
artist:"y" keyword).

Subset caps bound the cross products: at most 8 genres x 3 keywords,
6 artists x 2 keywords, plus 3 bare keywords.
"""

from typing import Callable, List, Optional, Sequence, Tuple

from .config import DEFAULT_MOOD, DEFAULT_MOOD_QUERY, MOOD_PROFILES, MOOD_TO_QUERY, MoodProfile
from .language import Language, hint_keywords_for
from .taste import TasteProfile
from .utils import strip_quotes, unique
from .vibe import VibeSignals

MOOD_GENRES = 8
VIBE_GENRES = 6
GENRE_KEYWORDS = 3
ARTISTS = 6
ARTIST_KEYWORDS = 2
BARE_KEYWORDS = 3


def mood_profile(mood: str) -> MoodProfile:
    return MOOD_PROFILES.get(mood) or MOOD_PROFILES[DEFAULT_MOOD]


def mood_search_query(mood: str) -> str:
    """Broad OR-query for a mood, used by fallback searches."""
    return MOOD_TO_QUERY.get(mood, DEFAULT_MOOD_QUERY)


def _cross(
    genres: Sequence[str],
    artists: Sequence[str],
    keywords: Sequence[str],
) -> List[str]:
    queries = []
    for genre in genres:
        for keyword in keywords[:GENRE_KEYWORDS]:
            queries.append(f'genre:"{strip_quotes(genre)}" {keyword}')
    for artist in artists[:ARTISTS]:
        for keyword in keywords[:ARTIST_KEYWORDS]:
            queries.append(f'artist:"{strip_quotes(artist)}" {keyword}')
    queries.extend(keywords[:BARE_KEYWORDS])
    return queries


def build_mood_queries(taste: TasteProfile, mood: str) -> List[str]:
    """
    Build search queries from taste and a mood's vocabulary.

    Args:
        taste: Listener profile (may be empty)
        mood: Mood label

    Returns:
        Ordered, de-duplicated queries
    """
    profile = mood_profile(mood)
    genre_pool = unique(g.lower() for g in list(taste.genres) + list(profile.example_genres))
    return unique(_cross(genre_pool[:MOOD_GENRES], list(taste.artist_names), profile.keywords))


def build_vibe_queries(taste: TasteProfile, mood: str, signals: VibeSignals) -> List[str]:
    """
    Build queries from vibe keywords, followed by the mood queries.

    Args:
        taste: Listener profile (may be empty)
        mood: Resolved mood label
        signals: Signals extracted from the prompt

    Returns:
        Ordered, de-duplicated queries
    """
    keywords = [k.lower() for k in signals.keywords]
    vibe = _cross(list(taste.genres)[:VIBE_GENRES], list(taste.artist_names), keywords)
    return unique(vibe + build_mood_queries(taste, mood))


def build_language_hint_queries(language: Language, mood: str) -> List[str]:
    """
    Build language-biased queries used to pad a filtered pool.

    Each hint keyword is first mixed with the mood's broad query, then
    tried alone.
    """
    hints = hint_keywords_for(language)
    mood_query = mood_search_query(mood)
    mixed = [f"{hint} {mood_query}".strip() for hint in hints]
    return unique(mixed + hints)


# =============================================================================
# TRACK LOOKUP CHAIN
# =============================================================================

LookupStrategy = Callable[[str, str], Optional[str]]


def _field_scoped(title: str, artist: str) -> Optional[str]:
    if not title or not artist:
        return None
    return f'track:"{strip_quotes(title)}" artist:"{strip_quotes(artist)}"'


def _title_and_artist(title: str, artist: str) -> Optional[str]:
    return f"{title} {artist}".strip() or None


def _title_only(title: str, artist: str) -> Optional[str]:
    return title or None


# Tried in order; the first query that finds a track wins
TRACK_LOOKUP_CHAIN: Tuple[LookupStrategy, ...] = (
    _field_scoped,
    _title_and_artist,
    _title_only,
)


def lookup_queries(
    title: str,
    artist: str,
    chain: Sequence[LookupStrategy] = TRACK_LOOKUP_CHAIN,
) -> List[str]:
    """Queries for resolving a (title, artist) pair, most precise first."""
    title = (title or "").strip()
    artist = (artist or "").strip()
    return unique(strategy(title, artist) for strategy in chain)
