import asyncio

from moodify_recs.taste import PersonalSeedsProvider, TasteProfileBuilder
from moodify_recs.utils import TTLCache

from conftest import FakeSpotify, FakeTags, client_for, raw_track


def artist(artist_id, name, genres):
    return {"id": artist_id, "name": name, "genres": genres}


def listener():
    return FakeSpotify(
        user={"id": "u1", "display_name": "Sam"},
        top_artists=[
            artist("a1", "Nujabes", ["Jazz Hop", "lofi"]),
            artist("a2", "Tom Misch", ["lofi", "neo soul"]),
            artist("a3", "", ["ignored"]),
        ],
        user_top_tracks=[raw_track("t1", "Feather")],
        saved=[raw_track("s1", "Saved One")],
        recent=[raw_track("r1", "Recent One")],
    )


def run(coro):
    return asyncio.run(coro)


def test_anonymous_profile_is_empty():
    profile = run(TasteProfileBuilder().build(None))
    assert profile.is_empty
    assert profile.artist_names == ()


def test_profile_from_history():
    tags = FakeTags(artist_tags={"Nujabes": ["jazz hop", "japanese"], "Tom Misch": ["jazz hop"]})
    profile = run(TasteProfileBuilder(tags).build(client_for(listener())))

    assert profile.artist_names == ("Nujabes", "Tom Misch")
    assert profile.artist_ids == frozenset({"a1", "a2", "a3"})
    assert profile.genres[0] == "lofi"
    assert set(profile.genres) == {"lofi", "jazz hop", "neo soul", "ignored"}
    assert profile.tags[0] == "jazz hop"
    assert profile.top_track_ids == frozenset({"t1"})
    assert profile.saved_track_ids == frozenset({"s1"})
    assert profile.recent_track_ids == frozenset({"r1"})
    assert not profile.is_empty


class BrokenHistory(FakeSpotify):
    def current_user_saved_tracks(self, limit=20):
        raise RuntimeError("boom")


def test_failed_history_fetch_contributes_nothing():
    sp = BrokenHistory(top_artists=[artist("a1", "Nujabes", ["lofi"])])
    profile = run(TasteProfileBuilder().build(client_for(sp)))
    assert profile.saved_track_ids == frozenset()
    assert profile.artist_names == ("Nujabes",)


def test_personal_seeds_are_cached_per_user():
    sp = listener()
    provider = PersonalSeedsProvider(TTLCache(600))

    seeds = run(provider.get(client_for(sp)))
    assert seeds.user_id == "u1"
    assert seeds.display_name == "Sam"
    assert seeds.top_artist_ids == ("a1", "a2", "a3")
    assert seeds.top_track_ids == ("t1",)

    sp._top_artists = []
    assert run(provider.get(client_for(sp))) is seeds


def test_personal_seeds_need_identity():
    provider = PersonalSeedsProvider(TTLCache(600))
    assert run(provider.get(None)) is None
    assert run(provider.get(client_for(FakeSpotify(user={})))) is None
