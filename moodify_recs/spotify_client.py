"""
Spotify API Client Wrapper
==========================

Handles all interactions with Spotify API including:
- Client-credentials token acquisition
- Track search
- Audio features and artist metadata (batched)
- Artist top tracks, related artists and seeded recommendations
- Listener history for an end-user token

Every call goes through call_with_retry: spotipy is given a plain
requests.Session so it never retries on its own, and 429/5xx handling
follows our policy instead.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import requests
import spotipy
from spotipy.exceptions import SpotifyException
from spotipy.oauth2 import SpotifyClientCredentials, SpotifyOauthError

from .concurrency import Deadline, Sleep, backoff_delay, call_with_retry
from .config import (
    DEFAULT_FETCH_CONFIG,
    DEFAULT_MARKET,
    RECOMMENDATION_SEEDS_MAX,
    RECOMMENDATIONS_LIMIT_MAX,
    SEARCH_LIMIT_MAX,
    SPOTIFY_CLIENT_ID,
    SPOTIFY_CLIENT_SECRET,
    FetchConfig,
)
from .errors import AuthError, ConfigurationError, UpstreamError, parse_retry_after

logger = logging.getLogger(__name__)


class TokenProvider:
    """
    Exchanges application credentials for a bearer token.

    The underlying SpotifyClientCredentials manager caches the token until
    it expires, so one provider can be shared across requests.
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        config: FetchConfig = DEFAULT_FETCH_CONFIG,
    ):
        """
        Initialize token provider.

        Args:
            client_id: Spotify client ID (defaults to the environment)
            client_secret: Spotify client secret (defaults to the environment)
            config: Timeout/retry configuration
        """
        self.client_id = (client_id or SPOTIFY_CLIENT_ID or "").strip()
        self.client_secret = (client_secret or SPOTIFY_CLIENT_SECRET or "").strip()
        self.config = config
        self._auth_manager: Optional[SpotifyClientCredentials] = None

    def _manager(self) -> SpotifyClientCredentials:
        if not self.client_id or not self.client_secret:
            logger.error(
                "Missing Spotify credentials (client id set: %s, client secret set: %s)",
                bool(self.client_id),
                bool(self.client_secret),
            )
            raise ConfigurationError("Missing SPOTIFY_CLIENT_ID/SPOTIFY_CLIENT_SECRET in environment")
        if self._auth_manager is None:
            self._auth_manager = SpotifyClientCredentials(
                client_id=self.client_id,
                client_secret=self.client_secret,
                requests_timeout=self.config.request_timeout,
            )
        return self._auth_manager

    async def acquire(self) -> str:
        """
        Get an application bearer token.

        Raises:
            ConfigurationError: Credentials are not configured
            AuthError: Credentials were rejected or the service is unreachable
        """
        manager = self._manager()
        attempt = 0
        while True:
            try:
                token = await asyncio.wait_for(
                    asyncio.to_thread(manager.get_access_token, as_dict=False),
                    timeout=self.config.request_timeout,
                )
            except SpotifyOauthError as exc:
                raise AuthError(f"Spotify rejected the application credentials: {exc}") from exc
            except (asyncio.TimeoutError, requests.exceptions.RequestException) as exc:
                if attempt >= self.config.max_retries:
                    raise AuthError(f"Spotify token request failed: {exc!r}") from exc
                await asyncio.sleep(backoff_delay(self.config, attempt))
                attempt += 1
                continue
            if not token:
                raise AuthError("Spotify token response did not include an access token")
            return token


class SpotifyClient:
    """
    Async wrapper around Spotipy with bounded, retrying calls.

    Every public method degrades to an empty result (or None) when the call
    is abandoned; nothing here raises on upstream failure.

    Attributes:
        sp: Spotipy client instance (or any object with the same methods)
    """

    def __init__(
        self,
        token: Optional[str] = None,
        sp: Optional[Any] = None,
        config: FetchConfig = DEFAULT_FETCH_CONFIG,
        deadline: Optional[Deadline] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        """
        Initialize Spotify client.

        Args:
            token: Bearer token (app or end-user)
            sp: Pre-built spotipy-compatible client; built from token if None
            config: Timeout/retry configuration
            deadline: Request deadline shared by all calls
            sleep: Awaitable sleep used between retries
        """
        if sp is None:
            sp = spotipy.Spotify(
                auth=token,
                requests_session=requests.Session(),
                requests_timeout=config.request_timeout,
            )
        self.sp = sp
        self.config = config
        self.deadline = deadline
        self._sleep = sleep

    def _invoke(self, method: str, *args, **kwargs) -> Any:
        """Run one spotipy call, translating HTTP failures to UpstreamError."""
        try:
            return getattr(self.sp, method)(*args, **kwargs)
        except SpotifyException as exc:
            headers = exc.headers or {}
            raise UpstreamError(
                exc.http_status or 0,
                f"{method}: {exc.msg}",
                retry_after=parse_retry_after(headers.get("Retry-After")),
            ) from exc

    async def _call(self, label: str, method: str, *args, **kwargs) -> Optional[Any]:
        return await call_with_retry(
            self._invoke,
            method,
            *args,
            label=label,
            config=self.config,
            deadline=self.deadline,
            sleep=self._sleep,
            **kwargs,
        )

    @staticmethod
    def _items(result: Any, *path: str) -> List[Dict]:
        """Dig a list out of a response, ignoring malformed shapes."""
        node = result
        for key in path:
            if not isinstance(node, dict):
                return []
            node = node.get(key)
        if not isinstance(node, list):
            return []
        return [item for item in node if isinstance(item, dict)]

    # =========================================================================
    # SEARCH OPERATIONS
    # =========================================================================

    async def search_tracks(
        self,
        query: str,
        limit: int = 8,
        market: str = DEFAULT_MARKET
    ) -> List[Dict]:
        """
        Track search.

        Args:
            query: Search query (field filters allowed)
            limit: Maximum tracks to return
            market: Market country code

        Returns:
            List of track dictionaries
        """
        result = await self._call(
            f"search {query!r}",
            "search",
            q=query,
            limit=max(1, min(limit, SEARCH_LIMIT_MAX)),
            type="track",
            market=market,
        )
        return self._items(result, "tracks", "items")

    # =========================================================================
    # BATCH LOOKUPS
    # =========================================================================

    async def get_audio_features(self, track_ids: Sequence[str]) -> List[Dict]:
        """
        Fetch audio features for one batch of tracks.

        Args:
            track_ids: Spotify track IDs (caller enforces the batch size)

        Returns:
            Audio feature dictionaries; unavailable tracks are skipped
        """
        if not track_ids:
            return []
        result = await self._call(
            f"audio-features x{len(track_ids)}", "audio_features", list(track_ids)
        )
        if not isinstance(result, list):
            return []
        return [f for f in result if isinstance(f, dict)]

    async def get_artists(self, artist_ids: Sequence[str]) -> List[Dict]:
        """
        Fetch artist metadata for one batch of artists.

        Args:
            artist_ids: Spotify artist IDs (caller enforces the batch size)

        Returns:
            List of artist dictionaries
        """
        if not artist_ids:
            return []
        result = await self._call(f"artists x{len(artist_ids)}", "artists", list(artist_ids))
        return self._items(result, "artists")

    async def get_artist_top_tracks(
        self,
        artist_id: str,
        market: str = DEFAULT_MARKET
    ) -> List[Dict]:
        """Fetch top tracks for an artist."""
        result = await self._call(
            f"top-tracks {artist_id}", "artist_top_tracks", artist_id, country=market
        )
        return self._items(result, "tracks")

    async def get_related_artists(self, artist_id: str) -> List[Dict]:
        """Fetch related artists for a given artist."""
        result = await self._call(
            f"related-artists {artist_id}", "artist_related_artists", artist_id
        )
        return self._items(result, "artists")

    async def get_recommendations(
        self,
        seed_artists: Optional[Sequence[str]] = None,
        seed_tracks: Optional[Sequence[str]] = None,
        seed_genres: Optional[Sequence[str]] = None,
        limit: int = 10,
        market: str = DEFAULT_MARKET,
        targets: Optional[Dict[str, Optional[float]]] = None,
    ) -> List[Dict]:
        """
        Fetch seeded recommendations tuned toward target audio features.

        Args:
            seed_artists: Artist IDs (first 5 used)
            seed_tracks: Track IDs (first 5 used)
            seed_genres: Genre seeds (first 5 used)
            limit: Tracks to return (1..20)
            market: Market country code
            targets: valence/energy/danceability/tempo targets; None values skipped

        Returns:
            List of track dictionaries
        """
        artists = list(seed_artists or [])[:RECOMMENDATION_SEEDS_MAX]
        tracks = list(seed_tracks or [])[:RECOMMENDATION_SEEDS_MAX]
        genres = list(seed_genres or [])[:RECOMMENDATION_SEEDS_MAX]
        if not (artists or tracks or genres):
            return []

        tunables = {
            f"target_{name}": value
            for name, value in (targets or {}).items()
            if value is not None
        }
        result = await self._call(
            "recommendations",
            "recommendations",
            seed_artists=artists or None,
            seed_genres=genres or None,
            seed_tracks=tracks or None,
            limit=max(1, min(limit, RECOMMENDATIONS_LIMIT_MAX)),
            country=market,
            **tunables,
        )
        return self._items(result, "tracks")

    async def get_genre_seeds(self) -> Optional[List[str]]:
        """Fetch available recommendation genre seeds; None if unavailable."""
        result = await self._call("genre-seeds", "recommendation_genre_seeds")
        if not isinstance(result, dict) or not isinstance(result.get("genres"), list):
            return None
        return [str(g) for g in result["genres"] if g]

    # =========================================================================
    # LISTENER HISTORY (end-user token only)
    # =========================================================================

    async def get_current_user(self) -> Optional[Dict]:
        """Fetch the current user's profile."""
        result = await self._call("me", "current_user")
        return result if isinstance(result, dict) else None

    async def get_top_artists(self, limit: int = 20) -> List[Dict]:
        result = await self._call(
            "me/top/artists", "current_user_top_artists", limit=limit, time_range="medium_term"
        )
        return self._items(result, "items")

    async def get_top_tracks(self, limit: int = 20) -> List[Dict]:
        result = await self._call(
            "me/top/tracks", "current_user_top_tracks", limit=limit, time_range="medium_term"
        )
        return self._items(result, "items")

    async def get_saved_tracks(self, limit: int = 50) -> List[Dict]:
        result = await self._call(
            "me/tracks", "current_user_saved_tracks", limit=max(1, min(limit, 50))
        )
        return [item["track"] for item in self._items(result, "items") if isinstance(item.get("track"), dict)]

    async def get_recently_played(self, limit: int = 50) -> List[Dict]:
        result = await self._call(
            "me/player/recently-played", "current_user_recently_played", limit=max(1, min(limit, 50))
        )
        return [item["track"] for item in self._items(result, "items") if isinstance(item.get("track"), dict)]
