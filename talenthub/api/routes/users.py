from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.db.session import get_db
from talenthub.schemas.auth import ProfileLookupIn
from talenthub.schemas.common import Envelope, ProfileOut
from talenthub.services import auth_service

router = APIRouter(prefix="/users", tags=["users"])


@router.post("/profile", response_model=Envelope[ProfileOut])
async def public_profile(payload: ProfileLookupIn, db: AsyncSession = Depends(get_db)) -> Envelope[ProfileOut]:
    user = await auth_service.public_profile(db, payload.username)
    return Envelope(data=ProfileOut.model_validate(user, from_attributes=True))
