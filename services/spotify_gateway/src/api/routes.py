"""HTTP routes for the Spotify gateway."""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Response, status
from fastapi.responses import JSONResponse

from services.spotify_gateway.src.exceptions import ErrorResult
from services.spotify_gateway.src.service import SpotifyGatewayService

from .dependencies import authenticate_request, get_service
from .schemas import (
    AuthorizationResponse,
    AuthorizeUrlResponse,
    ErrorResultResponse,
    FilteredPlaylistRequest,
    FilteredPlaylistResponse,
    MonthlyPlaylistRequest,
    RecommendationRequest,
)

auth_router = APIRouter(tags=["authorization"])
router = APIRouter(prefix="/users/{user_id}", tags=["users"])

ServiceDep = Depends(get_service)
UserDep = Depends(authenticate_request)
ERROR_RESULT_RESPONSES: dict[int | str, dict[str, Any]] = {400: {"model": ErrorResultResponse}}


def _result_response(result: dict[str, Any] | ErrorResult) -> Any:
    if isinstance(result, ErrorResult):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=result.to_dict())
    return result


@auth_router.get("/authorize/{user_id}", response_model=AuthorizeUrlResponse)
async def authorize(user_id: str, service: SpotifyGatewayService = ServiceDep) -> AuthorizeUrlResponse:
    """Get the Spotify authorization URL for an external user."""
    return AuthorizeUrlResponse(url=service.authorize_url(user_id))


@auth_router.get("/callback", response_model=AuthorizationResponse)
async def callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    service: SpotifyGatewayService = ServiceDep,
) -> AuthorizationResponse:
    """Complete the authorization-code grant; ``state`` carries the external user id."""
    if error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Authorization denied: {error}")
    if not code or not state:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing code or state")
    return AuthorizationResponse(**await service.grant_authorization_code(code, state))


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str = UserDep, service: SpotifyGatewayService = ServiceDep) -> Response:
    """Disconnect a user and delete their stored credential."""
    if not await service.delete_user(user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User {user_id} not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("")
async def get_profile(user_id: str = UserDep, service: SpotifyGatewayService = ServiceDep) -> Any:
    return await service.get_profile(user_id)


@router.get("/top-tracks")
async def get_top_tracks(
    limit: int = Query(20, ge=1, le=50),
    offset: int = Query(0, ge=0),
    user_id: str = UserDep,
    service: SpotifyGatewayService = ServiceDep,
) -> Any:
    return await service.get_top_tracks(user_id, limit, offset)


@router.get("/top-artists")
async def get_top_artists(
    limit: int = Query(20, ge=1, le=50),
    offset: int = Query(0, ge=0),
    user_id: str = UserDep,
    service: SpotifyGatewayService = ServiceDep,
) -> Any:
    return await service.get_top_artists(user_id, limit, offset)


@router.get("/top-genres")
async def get_top_genres(
    count: int = Query(5, ge=1, le=20),
    user_id: str = UserDep,
    service: SpotifyGatewayService = ServiceDep,
) -> list[str]:
    return await service.get_top_genres(user_id, count)


@router.get("/recently-played")
async def get_recently_played(
    limit: int = Query(20, ge=1, le=50),
    user_id: str = UserDep,
    service: SpotifyGatewayService = ServiceDep,
) -> Any:
    return await service.get_recently_played(user_id, limit)


@router.get("/saved-tracks")
async def get_saved_tracks(
    limit: int = Query(20, ge=1, le=50),
    offset: int = Query(0, ge=0),
    user_id: str = UserDep,
    service: SpotifyGatewayService = ServiceDep,
) -> Any:
    return await service.get_saved_tracks(user_id, limit, offset)


@router.get("/currently-playing")
async def get_currently_playing(user_id: str = UserDep, service: SpotifyGatewayService = ServiceDep) -> Any:
    playing = await service.get_currently_playing(user_id)
    if playing is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return playing


@router.get("/playlists")
async def get_playlists(
    limit: int = Query(20, ge=1, le=50),
    offset: int = Query(0, ge=0),
    user_id: str = UserDep,
    service: SpotifyGatewayService = ServiceDep,
) -> Any:
    return await service.get_playlists(user_id, limit, offset)


@router.get("/playlists/{playlist_id}/audio-features")
async def get_playlist_audio_features(
    playlist_id: str,
    user_id: str = UserDep,
    service: SpotifyGatewayService = ServiceDep,
) -> list[dict[str, Any]]:
    return await service.get_playlist_audio_features(user_id, playlist_id)


@router.post("/recommendations", responses=ERROR_RESULT_RESPONSES)
async def create_recommendations(
    request: RecommendationRequest,
    user_id: str = UserDep,
    service: SpotifyGatewayService = ServiceDep,
) -> Any:
    """Create a recommendation playlist from the selected listening history."""
    result = await service.create_recommendation_playlist(user_id, request.to_options())
    return _result_response(result)


@router.post("/playlists/monthly", responses=ERROR_RESULT_RESPONSES)
async def create_monthly_playlist(
    request: MonthlyPlaylistRequest,
    user_id: str = UserDep,
    service: SpotifyGatewayService = ServiceDep,
) -> Any:
    """Create a playlist of the tracks liked during one month."""
    result = await service.create_playlist_for_month(
        user_id,
        request.month,
        request.year,
        request.playlist_name,
        request.genre,
    )
    return _result_response(result)


@router.post("/playlists/filtered", response_model=FilteredPlaylistResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_filtered_playlist(
    request: FilteredPlaylistRequest,
    background_tasks: BackgroundTasks,
    user_id: str = UserDep,
    service: SpotifyGatewayService = ServiceDep,
) -> FilteredPlaylistResponse:
    """Select or create an artist-filtered playlist and fill it in the background."""
    selection = await service.create_filtered_playlist(user_id, request.filters, request.playlist_name)
    background_tasks.add_task(
        service.populate_filtered_playlist_in_background,
        user_id,
        selection.playlist_id,
        selection.artist_ids,
    )
    return FilteredPlaylistResponse(
        playlist=selection.playlist,
        created=selection.created,
        artist_ids=selection.artist_ids,
    )
