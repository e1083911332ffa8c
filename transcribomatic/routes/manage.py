from typing import Optional

from fastapi import APIRouter, Depends

from transcribomatic.services import ProxyServices

from .deps import get_services
from .schemas import ManageUpdateRequest

router = APIRouter()


@router.get("/manage")
def get_manage(token: Optional[str] = None, services: ProxyServices = Depends(get_services)):
    view = services.accounts.open_management(token)
    return view.to_dict()


@router.post("/manage")
def update_manage(payload: ManageUpdateRequest, services: ProxyServices = Depends(get_services)):
    user = services.accounts.update_settings(
        payload.token,
        payload.show_transcription,
        payload.show_paralanguage,
        payload.show_image,
    )
    return {
        "success": True,
        "message": "Configuration saved successfully!",
        "config": user.display_config(),
    }
