"""
Language Filter
===============

Pluggable language classifiers over (title, artist, artist genres).

Each constrained language registers one LanguageClassifier, which carries
its own market and search hint keywords. Language.ANY has no classifier
and lets every track through.

Heuristics are layered:
    1. deny patterns reject a track outright
    2. allow patterns (genres or text) accept it outright
    3. script detection decides the rest
"""

import re
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Pattern, Sequence, Tuple

from .config import DEFAULT_MARKET
from .errors import InvalidRequestError
from .features import Track, track_genres


class Language(str, Enum):
    ANY = "any"
    ENGLISH = "english"
    URDU = "urdu"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Language":
        """Parse a request value; empty means ANY."""
        if isinstance(value, cls):
            return value
        text = (value or "").strip().lower()
        if not text:
            return cls.ANY
        for language in cls:
            if language.value == text:
                return language
        raise InvalidRequestError(f"Unsupported language: {value!r}")


_ARABIC_SCRIPT = re.compile(r"[\u0600-\u06FF]")

# Extended Latin ranges count as Latin so accented titles stay English-eligible
_LATIN_SCRIPT = re.compile(r"[A-Za-z\u00C0-\u024F]")

SOUTH_ASIAN_GENRES = re.compile(
    r"urdu|pakistan|pakistani|qawwali|ghazal|coke studio|punjabi|bollywood|hind(i|ustani)|desi|sufi",
    re.IGNORECASE,
)

# Devotional and South Asian markers that keep a track out of the English list.
# "dua" is left out: it collides with common artist names.
RELIGIOUS_MARKERS = re.compile(
    r"\b(quran|surah|ayat|azan|adhaan|nasheed|supplication|islam(ic)?|qari|qawwali|ghazal|hamd|naat)\b",
    re.IGNORECASE,
)

URDU_TEXT_MARKERS = re.compile(r"qawwali|ghazal|coke studio|pakistan|urdu", re.IGNORECASE)


def script_stats(text: str) -> Tuple[int, int, int]:
    """
    Count letters by script.

    Returns:
        (latin, arabic, total) letter counts
    """
    latin = arabic = total = 0
    for ch in text:
        if not ch.isalpha():
            continue
        total += 1
        if _LATIN_SCRIPT.match(ch):
            latin += 1
        elif _ARABIC_SCRIPT.match(ch):
            arabic += 1
    return latin, arabic, total


class LanguageClassifier:
    """
    Base class for a language classifier.

    Attributes:
        language: Language this classifier accepts
        market: Catalog market used when this language is requested
        hint_keywords: Search terms strongly associated with the language
        deny_patterns: Text patterns that reject a track
        deny_genres: Genre patterns that reject a track
    """

    language: Language = Language.ANY
    market: str = DEFAULT_MARKET
    hint_keywords: Tuple[str, ...] = ()
    deny_patterns: Tuple[Pattern, ...] = ()
    deny_genres: Tuple[Pattern, ...] = ()

    def matches(self, title: str, artist: str, genres: Sequence[str]) -> bool:
        raise NotImplementedError

    def _denied(self, text: str, genres: Sequence[str]) -> bool:
        joined = "|".join(genres)
        if any(p.search(text) for p in self.deny_patterns):
            return True
        return any(p.search(joined) for p in self.deny_genres)


class EnglishClassifier(LanguageClassifier):
    """Mostly Latin script, no Arabic script, no South Asian genres."""

    language = Language.ENGLISH
    market = "US"
    hint_keywords = ("english song", "pop", "rock", "indie", "r&b")
    deny_patterns = (RELIGIOUS_MARKERS,)
    deny_genres = (SOUTH_ASIAN_GENRES,)
    min_latin_ratio = 0.7

    def matches(self, title: str, artist: str, genres: Sequence[str]) -> bool:
        text = f"{title} {artist}"
        if self._denied(text, genres):
            return False
        latin, arabic, total = script_stats(text)
        if total == 0 or arabic > 0:
            return False
        return latin / total >= self.min_latin_ratio


class UrduClassifier(LanguageClassifier):
    """Arabic script, South Asian genres or Urdu markers in the text."""

    language = Language.URDU
    market = "PK"
    hint_keywords = (
        "qawwali",
        "ghazal",
        "coke studio",
        "pakistan",
        "urdu song",
        "nusrat fateh ali khan",
        "atif aslam",
        "rahat fateh ali khan",
        "junoon",
    )
    allow_genres: Tuple[Pattern, ...] = (SOUTH_ASIAN_GENRES,)
    allow_patterns: Tuple[Pattern, ...] = (URDU_TEXT_MARKERS,)

    def matches(self, title: str, artist: str, genres: Sequence[str]) -> bool:
        text = f"{title} {artist}"
        if self._denied(text, genres):
            return False
        if _ARABIC_SCRIPT.search(text):
            return True
        joined = "|".join(genres)
        if any(p.search(joined) for p in self.allow_genres):
            return True
        return any(p.search(text) for p in self.allow_patterns)


_CLASSIFIERS: Dict[Language, LanguageClassifier] = {}


def register_classifier(classifier: LanguageClassifier) -> None:
    """Register (or replace) the classifier for its language."""
    _CLASSIFIERS[classifier.language] = classifier


def classifier_for(language: Language) -> Optional[LanguageClassifier]:
    """Classifier for a language; None for ANY or unregistered languages."""
    if language == Language.ANY:
        return None
    return _CLASSIFIERS.get(language)


def market_for(language: Language) -> str:
    classifier = classifier_for(language)
    return classifier.market if classifier else DEFAULT_MARKET


def hint_keywords_for(language: Language) -> List[str]:
    classifier = classifier_for(language)
    return list(classifier.hint_keywords) if classifier else []


register_classifier(EnglishClassifier())
register_classifier(UrduClassifier())


class LanguageFilter:
    """Keeps only tracks the requested language's classifier accepts."""

    def __init__(self, language: Language = Language.ANY):
        self.language = language
        self.classifier = classifier_for(language)

    @property
    def active(self) -> bool:
        return self.classifier is not None

    def matches(self, track: Track, genres: Sequence[str]) -> bool:
        if self.classifier is None:
            return True
        return self.classifier.matches(track.title, track.artist, genres)

    def apply(self, tracks: Iterable[Track], artist_genres: Mapping[str, List[str]]) -> List[Track]:
        """
        Filter tracks, preserving order.

        Args:
            tracks: Candidate tracks
            artist_genres: Artist ID -> genres map from enrichment

        Returns:
            Accepted tracks (all of them when unconstrained)
        """
        return [t for t in tracks if self.matches(t, track_genres(t, artist_genres))]
