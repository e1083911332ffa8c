from typing import Optional

from fastapi import APIRouter, Body, Depends
from fastapi.responses import Response

from transcribomatic.logger import get_logger
from transcribomatic.services import ProxyServices
from transcribomatic.storage.models import UsageAction

from .deps import get_services
from .schemas import ImageRequest

router = APIRouter()
log = get_logger("routes.images")


def _generate(services: ProxyServices, token: Optional[str], description: Optional[str]) -> Response:
    unique_id, description = services.accounts.authorize_image(token, description)

    image = services.openai.generate_image(description)
    # Only a delivered image is billed
    services.ledger.record_event(unique_id, UsageAction.PICTURE, description)
    log.info("image_generated", unique_id=unique_id, size=len(image))

    return Response(
        content=image,
        media_type="image/jpeg",
        headers={"Cache-Control": "max-age=3600"},
    )


@router.get("/generate_image")
def get_generate_image(
    token: Optional[str] = None,
    description: Optional[str] = None,
    services: ProxyServices = Depends(get_services),
):
    return _generate(services, token, description)


@router.post("/generate_image")
def post_generate_image(
    payload: Optional[ImageRequest] = Body(None),
    services: ProxyServices = Depends(get_services),
):
    payload = payload or ImageRequest()
    return _generate(services, payload.token, payload.description)
