import pytest

from moodify_recs.errors import InvalidRequestError
from moodify_recs.features import Track
from moodify_recs.language import (
    EnglishClassifier,
    Language,
    LanguageClassifier,
    LanguageFilter,
    UrduClassifier,
    classifier_for,
    hint_keywords_for,
    market_for,
    register_classifier,
    script_stats,
)


def track(title, artist="Singer", artist_ids=("a1",)):
    return Track(title=title, artist=artist, artist_ids=list(artist_ids))


def test_parse_language():
    assert Language.parse(None) is Language.ANY
    assert Language.parse("") is Language.ANY
    assert Language.parse(" Urdu ") is Language.URDU
    assert Language.parse(Language.ENGLISH) is Language.ENGLISH
    with pytest.raises(InvalidRequestError):
        Language.parse("klingon")


def test_script_stats():
    assert script_stats("Café 42") == (4, 0, 4)
    latin, arabic, total = script_stats("دل Dil")
    assert (latin, arabic, total) == (3, 2, 5)


@pytest.mark.parametrize("title,artist,genres,expected", [
    ("Blinding Lights", "The Weeknd", ["canadian pop"], True),
    ("Déjà Vu", "Olivia Rodrigo", [], True),
    ("Tajdar-e-Haram", "Atif Aslam", ["pakistani pop"], False),
    ("Sunflower", "Post Malone", [], True),
    ("Surah Rahman", "Qari", [], False),
    ("دل دل پاکستان", "Vital Signs", [], False),
    ("Levitating", "Dua Lipa", ["dance pop"], True),
])
def test_english_classifier(title, artist, genres, expected):
    assert EnglishClassifier().matches(title, artist, genres) is expected


@pytest.mark.parametrize("title,artist,genres,expected", [
    ("دل دل پاکستان", "Vital Signs", [], True),
    ("Afreen Afreen", "Rahat Fateh Ali Khan", ["qawwali"], True),
    ("Coke Studio Season 9 Medley", "Various", [], True),
    ("Blinding Lights", "The Weeknd", ["canadian pop"], False),
])
def test_urdu_classifier(title, artist, genres, expected):
    assert UrduClassifier().matches(title, artist, genres) is expected


def test_registry_and_markets():
    assert classifier_for(Language.ANY) is None
    assert isinstance(classifier_for(Language.URDU), UrduClassifier)
    assert market_for(Language.URDU) == "PK"
    assert market_for(Language.ENGLISH) == "US"
    assert market_for(Language.ANY) == "US"
    assert hint_keywords_for(Language.ANY) == []
    assert "qawwali" in hint_keywords_for(Language.URDU)


def test_register_replaces_classifier():
    original = classifier_for(Language.ENGLISH)

    class AcceptAll(LanguageClassifier):
        language = Language.ENGLISH

        def matches(self, title, artist, genres):
            return True

    try:
        register_classifier(AcceptAll())
        assert LanguageFilter(Language.ENGLISH).matches(track("دل"), [])
    finally:
        register_classifier(original)


def test_any_filter_keeps_everything():
    tracks = [track("Blinding Lights"), track("دل دل پاکستان")]
    language_filter = LanguageFilter(Language.ANY)
    assert not language_filter.active
    assert language_filter.apply(tracks, {}) == tracks


def test_filter_uses_artist_genres():
    tracks = [
        track("Pasoori", artist="Ali Sethi", artist_ids=("ali",)),
        track("Yellow", artist="Coldplay", artist_ids=("cp",)),
    ]
    genres = {"ali": ["pakistani pop", "coke studio"], "cp": ["permanent wave"]}

    assert [t.title for t in LanguageFilter(Language.URDU).apply(tracks, genres)] == ["Pasoori"]
    assert [t.title for t in LanguageFilter(Language.ENGLISH).apply(tracks, genres)] == ["Yellow"]
