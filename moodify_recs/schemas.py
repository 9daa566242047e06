from typing import List, Optional

from pydantic import BaseModel, Field


class PlaylistRequest(BaseModel):
    mood: Optional[str] = None
    prompt: Optional[str] = Field(default=None, max_length=500)
    language: Optional[str] = "any"


class TrackOut(BaseModel):
    title: str
    artist: str
    cover: str = ""
    preview_url: Optional[str] = None
    spotify_url: Optional[str] = None
    spotify_id: Optional[str] = None
    artist_ids: List[str] = []
    primary_artist_id: Optional[str] = None
    match_reason: Optional[str] = None
    duration_ms: Optional[int] = None


class PlaylistMeta(BaseModel):
    source: str
    personalized: bool
    username: Optional[str] = None
    confirmation: Optional[str] = None
    comfort: str = ""


class PlaylistResponse(BaseModel):
    ok: bool = True
    mood: str
    tracks: List[TrackOut]
    meta: PlaylistMeta


class ErrorResponse(BaseModel):
    ok: bool = False
    error: str
