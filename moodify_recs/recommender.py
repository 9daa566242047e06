"""
Main Recommendation Engine
==========================

Orchestrates the complete playlist pipeline:
1. Resolve the mood (label, prompt classifier, vibe rules)
2. Acquire the application token
3. Personalization seeds and anchor tracks (listener token only)
4. Build the taste profile
5. Search, relevance pre-rank and merge with anchors
6. Fall back to tag recordings and a broad mood search for thin pools
7. Combine, de-duplicate and shuffle
8. Enrich with audio features and artist genres
9. Apply the language filter, padding the pool when it runs dry
10. Score, rank and explain

This module ties together all components into a cohesive system.
"""

import json
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from .candidates import CandidateFetcher, TrackIndex, combine_tracks
from .concurrency import Deadline, WorkerPool
from .config import (
    DEFAULT_CACHE_CONFIG,
    DEFAULT_CANDIDATE_CONFIG,
    DEFAULT_FETCH_CONFIG,
    DEFAULT_TASTE_CONFIG,
    DEFAULT_WEIGHTS,
    MOOD_TO_SEEDS,
    REQUEST_DEADLINE_SECONDS,
    SAFE_GENRE_SEEDS,
    CacheConfig,
    CandidateConfig,
    FetchConfig,
    ScoringWeights,
    TasteConfig,
)
from .errors import InvalidRequestError
from .explainer import ExplanationGenerator, pick_comfort_message
from .features import Enrichment, FeatureEnricher, Track, track_from_spotify
from .language import Language, LanguageFilter, market_for
from .queries import (
    build_language_hint_queries,
    build_mood_queries,
    build_vibe_queries,
    mood_profile,
)
from .scoring import (
    ScoreBreakdown,
    ScoringEngine,
    mood_coverage,
    passes_hard_gate,
    primary_artist_name,
    rank_by_relevance,
)
from .spotify_client import SpotifyClient, TokenProvider
from .tags import MusicBrainzTags
from .taste import PersonalSeeds, PersonalSeedsProvider, TasteProfile, TasteProfileBuilder
from .utils import TTLCache, unique
from .vibe import MoodTargets, VibeSignals, analyze_prompt, normalize_mood, resolve_mood_targets

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, Deadline], SpotifyClient]
TagsFactory = Callable[[Deadline], MusicBrainzTags]

GENRE_SEEDS_KEY = "available"
LANGUAGE_PAD_REASON = "picked for your language"


@dataclass
class PlaylistResult:
    """Complete playlist output."""
    mood: str
    tracks: List[Track]
    personalized: bool = False
    username: Optional[str] = None
    confirmation: Optional[str] = None
    comfort: str = ""
    scores: List[ScoreBreakdown] = field(default_factory=list)

    @property
    def source(self) -> str:
        return "personalized+scored" if self.personalized else "scored"

    def to_dict(self, include_scores: bool = False) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        meta: Dict[str, Any] = {
            "source": self.source,
            "personalized": self.personalized,
            "comfort": self.comfort,
        }
        if self.username:
            meta["username"] = self.username
        if self.confirmation:
            meta["confirmation"] = self.confirmation

        tracks = []
        for i, track in enumerate(self.tracks):
            item = track.to_dict()
            if include_scores and i < len(self.scores):
                item["score"] = self.scores[i].to_dict()
            tracks.append(item)

        return {
            "ok": True,
            "mood": self.mood.lower(),
            "tracks": tracks,
            "meta": meta,
        }

    def to_json(self, indent: int = 2, include_scores: bool = False) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(include_scores), indent=indent, ensure_ascii=False)


@dataclass
class EngineCaches:
    """In-process caches shared across requests."""
    genre_seeds: TTLCache
    personal_seeds: TTLCache
    artist_tags: TTLCache

    @classmethod
    def create(
        cls,
        config: CacheConfig = DEFAULT_CACHE_CONFIG,
        clock: Callable[[], float] = time.monotonic,
    ) -> "EngineCaches":
        return cls(
            genre_seeds=TTLCache(config.genre_seeds_ttl, clock),
            personal_seeds=TTLCache(config.personal_seeds_ttl, clock),
            artist_tags=TTLCache(config.artist_tags_ttl, clock),
        )


def resolve_mood(
    mood: Optional[str],
    prompt: Optional[str],
) -> Tuple[str, Optional[VibeSignals]]:
    """
    Settle the mood for a request.

    An explicit, known label wins unless the prompt's vibe rules override
    it; with only a prompt, the prompt classifier picks the starting mood.

    Args:
        mood: Mood label from the request
        prompt: Free-text vibe description

    Returns:
        (mood label, vibe signals or None when there is no prompt)

    Raises:
        InvalidRequestError: Neither field is usable
    """
    prompt = (prompt or "").strip()
    label = normalize_mood(mood)
    if not prompt:
        if label is None:
            if mood and mood.strip():
                raise InvalidRequestError(f"Unknown mood: {mood!r}")
            raise InvalidRequestError("Provide a mood or a prompt")
        return label, None

    signals = analyze_prompt(prompt, label)
    return signals.mood, signals


def _default_client_factory(config: FetchConfig) -> ClientFactory:
    def build(token: str, deadline: Deadline) -> SpotifyClient:
        return SpotifyClient(token=token, config=config, deadline=deadline)
    return build


class RecommendationEngine:
    """
    Main recommendation engine orchestrating the complete pipeline.

    Usage:
        engine = RecommendationEngine()
        result = asyncio.run(engine.generate(mood="Chill"))
        print(result.to_json())
    """

    def __init__(
        self,
        token_provider: Optional[TokenProvider] = None,
        client_factory: Optional[ClientFactory] = None,
        tags_factory: Optional[TagsFactory] = None,
        caches: Optional[EngineCaches] = None,
        rng: Optional[random.Random] = None,
        fetch_config: FetchConfig = DEFAULT_FETCH_CONFIG,
        candidate_config: CandidateConfig = DEFAULT_CANDIDATE_CONFIG,
        taste_config: TasteConfig = DEFAULT_TASTE_CONFIG,
        weights: ScoringWeights = DEFAULT_WEIGHTS,
        deadline_seconds: Optional[float] = REQUEST_DEADLINE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize recommendation engine.

        Args:
            token_provider: Application token source (built from the environment if None)
            client_factory: Builds a catalog client for (token, deadline)
            tags_factory: Builds a tag service for a deadline (MusicBrainz if None)
            caches: Shared caches (fresh ones if None)
            rng: Random source for the shuffle and comfort messages
            fetch_config: Timeout/retry/worker configuration
            candidate_config: Candidate generation configuration
            taste_config: Listener history page sizes
            weights: Scoring weights
            deadline_seconds: Budget for one request (None for unbounded)
            clock: Monotonic clock for the deadline
        """
        self.token_provider = token_provider or TokenProvider(config=fetch_config)
        self.client_factory = client_factory or _default_client_factory(fetch_config)
        self.caches = caches or EngineCaches.create()
        self.tags_factory = tags_factory or self._default_tags
        self.rng = rng or random.Random()
        self.fetch_config = fetch_config
        self.candidate_config = candidate_config
        self.taste_config = taste_config
        self.scorer = ScoringEngine(weights)
        self.explainer = ExplanationGenerator()
        self.seeds_provider = PersonalSeedsProvider(self.caches.personal_seeds, taste_config)
        self.deadline_seconds = deadline_seconds
        self.clock = clock

    def _default_tags(self, deadline: Deadline) -> MusicBrainzTags:
        return MusicBrainzTags(cache=self.caches.artist_tags, config=self.fetch_config, deadline=deadline)

    async def generate(
        self,
        mood: Optional[str] = None,
        prompt: Optional[str] = None,
        language: Optional[str] = None,
        user_token: Optional[str] = None,
    ) -> PlaylistResult:
        """
        Generate a playlist for a mood or a free-text prompt.

        Args:
            mood: Mood label (Happy, Sad, Chill, Energetic, Romantic, Focus)
            prompt: Free-text vibe description
            language: "any", "english" or "urdu"
            user_token: Listener bearer token for personalization

        Returns:
            PlaylistResult with at most 15 scored tracks

        Raises:
            InvalidRequestError: Bad mood/prompt/language
            ConfigurationError: Application credentials missing
            AuthError: Application credentials rejected
        """
        cfg = self.candidate_config
        mood_label, signals = resolve_mood(mood, prompt)
        lang = Language.parse(language)
        market = market_for(lang)
        logger.info("Generating playlist: mood=%s language=%s market=%s", mood_label, lang.value, market)

        deadline = Deadline(self.deadline_seconds, self.clock)
        app_token = await self.token_provider.acquire()

        user_token = (user_token or "").strip() or None
        app_client = self.client_factory(app_token, deadline)
        user_client = self.client_factory(user_token, deadline) if user_token else None
        catalog = user_client or app_client

        pool = WorkerPool(self.fetch_config.workers, deadline)
        fetcher = CandidateFetcher(catalog, pool, cfg, market)
        enricher = FeatureEnricher(catalog, pool)
        targets = resolve_mood_targets(mood_label, signals.targets if signals else None)

        # Personalization
        seeds = await self.seeds_provider.get(user_client)
        anchors: List[Track] = []
        if seeds is not None:
            anchors = await self._anchor_tracks(
                seeds, mood_label, targets, fetcher, enricher, app_client, user_client
            )

        tags = self.tags_factory(deadline)
        taste = await TasteProfileBuilder(tags, self.taste_config, self.fetch_config, deadline).build(user_client)

        # Search and pre-rank
        if signals is not None and signals.keywords:
            queries = build_vibe_queries(taste, mood_label, signals)
        else:
            queries = build_mood_queries(taste, mood_label)
        raw = await fetcher.search_many(queries)
        context = list(signals.keywords) if signals else []
        artist_tags = await self._artist_tag_map(tags, raw, deadline)
        searched = rank_by_relevance(raw, taste, mood_label, context, artist_tags=artist_tags)
        logger.info("Candidates: %d anchors, %d searched", len(anchors), len(searched))

        exclude = self._stale_top_track_keys(anchors + searched, taste, mood_label)

        # Thin-pool fallbacks
        tagged: List[Track] = []
        fallback: List[Track] = []
        if len(TrackIndex(anchors + searched)) < cfg.min_pool_size:
            tagged = await self._tag_recordings(tags, fetcher, mood_label, taste, deadline)
            if len(TrackIndex(anchors + searched + tagged)) < cfg.min_pool_size:
                fallback = await fetcher.mood_search(mood_label)
            logger.info("Thin pool: %d tagged, %d fallback tracks", len(tagged), len(fallback))

        combined = combine_tracks(
            [anchors, searched, tagged, fallback],
            exclude_keys=exclude,
            total=cfg.combine_total,
            rng=self.rng,
        )

        enrichment = await enricher.enrich(combined)

        # Language filter
        language_filter = LanguageFilter(lang)
        filtered = language_filter.apply(combined, enrichment.artist_genres)
        if language_filter.active and len(filtered) < cfg.min_pool_size:
            padded, extra = await self._language_padding(
                lang, mood_label, fetcher, enricher, language_filter, filtered
            )
            enrichment.update(extra)
            filtered = filtered + padded
            logger.info("Language padding added %d tracks", len(padded))

        ranked = self.scorer.rank(filtered, enrichment, taste, targets, lang)[:cfg.final_max]

        tracks: List[Track] = []
        scores: List[ScoreBreakdown] = []
        for track, breakdown in ranked:
            if not track.match_reason:
                track.match_reason = self.explainer.explain(
                    track, breakdown, enrichment.features_for(track), taste, targets
                )
            tracks.append(track)
            scores.append(breakdown)

        logger.info("Playlist ready: %d tracks for %s", len(tracks), mood_label)
        return PlaylistResult(
            mood=mood_label,
            tracks=tracks,
            personalized=seeds is not None,
            username=seeds.display_name if seeds else None,
            confirmation=signals.confirmation if signals else None,
            comfort=pick_comfort_message(signals, mood_label, self.rng),
            scores=scores,
        )

    # =========================================================================
    # PIPELINE STAGES
    # =========================================================================

    async def _genre_seeds(
        self,
        app_client: SpotifyClient,
        user_client: Optional[SpotifyClient],
    ) -> List[str]:
        """Available recommendation genres, cached; a safe list when unreachable."""
        cached = self.caches.genre_seeds.get(GENRE_SEEDS_KEY)
        if cached is not None:
            return cached
        for client in (app_client, user_client):
            if client is None:
                continue
            genres = await client.get_genre_seeds()
            if genres:
                self.caches.genre_seeds.set(GENRE_SEEDS_KEY, genres)
                return genres
        logger.warning("Genre seeds unavailable; using the safe list")
        return list(SAFE_GENRE_SEEDS)

    async def _anchor_tracks(
        self,
        seeds: PersonalSeeds,
        mood: str,
        targets: MoodTargets,
        fetcher: CandidateFetcher,
        enricher: FeatureEnricher,
        app_client: SpotifyClient,
        user_client: Optional[SpotifyClient],
    ) -> List[Track]:
        """
        Anchor tracks from the listener's own artists.

        When too few anchors pass the mood's hard gate, related artists in the
        mood's genres are pulled in; their tracks that fail the gate are dropped.
        """
        cfg = self.candidate_config
        available = set(await self._genre_seeds(app_client, user_client))
        mood_genres = [g for g in MOOD_TO_SEEDS.get(mood, []) if g in available][:3]

        top_tracks = await fetcher.artists_top_tracks(seeds.top_artist_ids[:cfg.anchor_artists])
        recommended = await fetcher.recommendations(
            targets,
            seed_artists=seeds.top_artist_ids[:2],
            seed_tracks=(seeds.top_track_ids or seeds.recent_track_ids)[:1],
            seed_genres=mood_genres[:2],
        )
        anchors = top_tracks + recommended

        features = await enricher.audio_features([t.spotify_id for t in anchors if t.spotify_id])
        coverage = mood_coverage(anchors, features, mood)
        logger.info("Anchor mood coverage: %.2f over %d tracks", coverage, len(anchors))
        if coverage >= cfg.min_mood_coverage:
            return anchors

        related = await fetcher.related_artists(seeds.top_artist_ids[:cfg.related_seed_artists])
        genre_map = await enricher.artist_genres(related)
        wanted = {g.lower() for g in mood_profile(mood).example_genres}
        in_mood = [
            artist_id for artist_id in related
            if wanted.intersection(genre_map.get(artist_id, []))
        ]
        if not in_mood:
            return anchors

        expansion = await fetcher.artists_top_tracks(in_mood)
        expansion += await fetcher.recommendations(
            targets,
            seed_artists=in_mood[:3],
            seed_genres=mood_genres[:2],
            limit=cfg.related_recommendations,
        )
        extra = await enricher.audio_features([t.spotify_id for t in expansion if t.spotify_id])
        # tracks without a feature record are unknown, not failures
        passing = [
            t for t in expansion
            if extra.get(t.spotify_id or "") is None or passes_hard_gate(mood, extra[t.spotify_id])
        ]
        logger.info("Related-artist expansion kept %d of %d tracks", len(passing), len(expansion))
        return anchors + passing

    @staticmethod
    def _stale_top_track_keys(tracks: Sequence[Track], taste: TasteProfile, mood: str) -> Set[str]:
        """Keys of the listener's own top tracks that say nothing about the mood."""
        keywords = [k.lower() for k in mood_profile(mood).keywords]
        stale = set()
        for track in tracks:
            if not track.spotify_id or track.spotify_id not in taste.top_track_ids:
                continue
            text = f"{track.title} {track.artist}".lower()
            if not any(k in text for k in keywords):
                stale.add(track.key)
        return stale

    async def _artist_tag_map(
        self,
        tags: MusicBrainzTags,
        raw: Sequence[Dict[str, Any]],
        deadline: Optional[Deadline] = None,
    ) -> Dict[str, List[str]]:
        """Community tags for the primary artists of raw search results."""
        names = unique(primary_artist_name(item) for item in raw)[:self.candidate_config.tag_pass_artists]
        if not names:
            return {}
        pool = WorkerPool(self.fetch_config.tag_workers, deadline)
        found = await pool.map(tags.artist_tags, names)
        return {name.lower(): list(t) for name, t in zip(names, found) if t}

    async def _tag_recordings(
        self,
        tags: MusicBrainzTags,
        fetcher: CandidateFetcher,
        mood: str,
        taste: TasteProfile,
        deadline: Optional[Deadline] = None,
    ) -> List[Track]:
        """
        Recordings tagged with the mood, the listener's artists first.

        Within each group recordings are ordered by listen count when
        popularity lookups are enabled.
        """
        cfg = self.candidate_config
        recordings = await tags.recordings_by_tag(mood.lower(), limit=cfg.tag_recordings)
        if cfg.tag_popularity and recordings:
            pool = WorkerPool(self.fetch_config.tag_workers, deadline)
            counts = await pool.map(tags.recording_popularity, [r.id for r in recordings])
            order = sorted(range(len(recordings)), key=lambda i: -(counts[i] or 0.0))
            recordings = [recordings[i] for i in order]
        known = {n.lower() for n in taste.artist_names}
        recordings = sorted(recordings, key=lambda r: r.artist.lower() not in known)
        return await fetcher.resolve_recordings(recordings, limit=cfg.tag_recordings_resolved)

    async def _language_padding(
        self,
        language: Language,
        mood: str,
        fetcher: CandidateFetcher,
        enricher: FeatureEnricher,
        language_filter: LanguageFilter,
        current: Sequence[Track],
    ) -> Tuple[List[Track], Enrichment]:
        """
        Extra tracks for a language-filtered pool that ran dry.

        Returns:
            (accepted new tracks, enrichment for the fetched tracks)
        """
        cfg = self.candidate_config
        queries = build_language_hint_queries(language, mood)
        raw = await fetcher.search_many(queries, cap=cfg.language_pad_cap)

        index = TrackIndex(current)
        fresh = []
        for item in raw:
            track = track_from_spotify(item, match_reason=LANGUAGE_PAD_REASON)
            if track is not None and index.add(track):
                fresh.append(track)

        extra = await enricher.enrich(fresh)
        accepted = language_filter.apply(fresh, extra.artist_genres)
        return accepted[:cfg.language_pad_target], extra
