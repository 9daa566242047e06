"""
Moodify Recs - HTTP API
=======================

FastAPI surface for the playlist engine.

Endpoints:
    POST /api/generate-playlist   {mood?, prompt?, language?} -> playlist
    GET  /health                  liveness check

The listener's token is read from the spotify_access_token cookie or an
Authorization: Bearer header; without one the playlist is anonymous.
"""

import logging
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import USER_TOKEN_COOKIE
from .errors import AuthError, InvalidRequestError, MoodifyError
from .recommender import RecommendationEngine
from .schemas import ErrorResponse, PlaylistRequest, PlaylistResponse

logger = logging.getLogger(__name__)

app = FastAPI(title="Moodify Recs API")

_engine: Optional[RecommendationEngine] = None


def get_engine() -> RecommendationEngine:
    """Process-wide engine; its caches outlive single requests."""
    global _engine
    if _engine is None:
        _engine = RecommendationEngine()
    return _engine


def user_token_from(request: Request) -> Optional[str]:
    token = request.cookies.get(USER_TOKEN_COOKIE)
    if token:
        return token
    header = request.headers.get("Authorization") or ""
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def error_status(exc: MoodifyError) -> int:
    if isinstance(exc, InvalidRequestError):
        return 400
    if isinstance(exc, AuthError):
        return 401
    return 500


def error_response(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Invalid request body: {exc.errors()}")
    return error_response(400, "Invalid request body")


@app.post(
    "/api/generate-playlist",
    response_model=PlaylistResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def generate_playlist(
    body: PlaylistRequest,
    request: Request,
    engine: RecommendationEngine = Depends(get_engine),
):
    """Generate a mood playlist, personalized when a listener token is present."""
    try:
        result = await engine.generate(
            mood=body.mood,
            prompt=body.prompt,
            language=body.language,
            user_token=user_token_from(request),
        )
    except MoodifyError as e:
        status = error_status(e)
        if status >= 500:
            logger.error(f"Playlist generation failed: {str(e)}")
        else:
            logger.info(f"Playlist request rejected ({status}): {str(e)}")
        return error_response(status, str(e))
    except Exception as e:
        logger.exception(f"Unexpected error in generate-playlist: {str(e)}")
        return error_response(500, "Internal error")

    return result.to_dict()


@app.get("/health")
async def health_check():
    """Health check endpoint that doesn't require authentication"""
    return {"status": "healthy"}
