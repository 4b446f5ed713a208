from fastapi import APIRouter, Depends
from app.schemas import UserMeResponse
from app.models import User
from app.auth import get_current_user

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserMeResponse)
async def read_current_user(current_user: User = Depends(get_current_user)):
    """Return details for the authenticated user."""
    return UserMeResponse(
        id=current_user.id,
        name=current_user.name,
        email=current_user.email,
        role=current_user.role,
        track_id=current_user.track_id,
        track=current_user.track.name if current_user.track else None,
    )
