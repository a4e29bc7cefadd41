from fastapi import APIRouter, Depends

from talenthub.api.deps import get_current_user, get_settings_dep, get_storage
from talenthub.core.config import Settings
from talenthub.integrations.storage import SupabaseStorage
from talenthub.models import User
from talenthub.schemas.common import Envelope
from talenthub.schemas.files import SignedUrlIn, SignedUrlOut

router = APIRouter(prefix="/files", tags=["files"])


@router.post("/signed-url", response_model=Envelope[SignedUrlOut])
async def signed_url(
    payload: SignedUrlIn,
    settings: Settings = Depends(get_settings_dep),
    storage: SupabaseStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
) -> Envelope[SignedUrlOut]:
    url = await storage.signed_url(settings.private_bucket, payload.path, settings.signed_url_ttl_seconds)
    return Envelope(data=SignedUrlOut(signed_url=url))
