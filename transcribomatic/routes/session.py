"""
Realtime session endpoint.

Also hosts the two flows the browser client reaches through the same URL:
``?mode=login`` and the ``log_usage`` POST.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends

from transcribomatic.core.errors import BadRequest
from transcribomatic.core.tokens import DEFAULT_MODEL, TRANSCRIPTION_MODEL, verify_model_name
from transcribomatic.logger import get_logger
from transcribomatic.services import ProxyServices

from .deps import get_services
from .schemas import SessionRequest

router = APIRouter()
log = get_logger("routes.session")


def _login(services: ProxyServices, token: Optional[str]):
    user = services.accounts.login(token)
    return {"success": True, "config": user.display_config()}


def _create_session(services: ProxyServices, signed_model: Optional[str]):
    model = DEFAULT_MODEL
    if signed_model is not None:
        model = verify_model_name(signed_model, services.config.signing_secret)
        if model is None:
            raise BadRequest("Invalid signed model")

    if model == TRANSCRIPTION_MODEL:
        session = services.openai.create_transcription_session()
    else:
        session = services.openai.create_realtime_session(model)
    log.info("session_created", model=model, session_type=session.session_type)
    return session.to_dict()


@router.get("/session")
def get_session(
    mode: Optional[str] = None,
    token: Optional[str] = None,
    model: Optional[str] = None,
    services: ProxyServices = Depends(get_services),
):
    if mode == "login":
        return _login(services, token)
    return _create_session(services, model)


@router.post("/session")
def post_session(
    payload: Optional[SessionRequest] = Body(None),
    services: ProxyServices = Depends(get_services),
):
    payload = payload or SessionRequest()
    if payload.mode == "log_usage":
        services.accounts.log_usage(payload.token, payload.usage, payload.word_count)
        return {"success": True}
    return _create_session(services, payload.model)
