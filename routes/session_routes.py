"""
Session Routes
Anti-forgery bootstrap, login, current-session lookup and logout
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from routes.dependencies import (
    RequestContext, clear_session_cookies, csrf_protected, csrf_protected_if_live, current_context, get_services,
    set_csrf_cookies, set_session_cookie,
)
from services.service_container import PortalServices
from utils.error_handler import AuthenticationRequired
from utils.input_validation import InputValidator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/session", tags=["session"])


class LoginRequest(BaseModel):
    username: Optional[Any] = None
    accountNumber: Optional[Any] = None
    password: Optional[Any] = None


@router.get("/csrf")
def issue_csrf_token(
    response: Response,
    context: RequestContext = Depends(current_context),
    services: PortalServices = Depends(get_services),
):
    """
    Hand out a fresh anti-forgery pair. Callers without a session get an
    anonymous one so login and registration can be protected too.
    """
    session = context.session
    if session is None:
        issued = services.authenticator.start_anonymous()
        set_session_cookie(response, issued.token, services.authenticator.config.anonymous_timeout_minutes)
        session = issued.record

    pair = services.csrf.issue(session)
    set_csrf_cookies(response, pair)
    return {"csrfToken": pair.token}


@router.post("")
def login(
    body: LoginRequest,
    response: Response,
    context: RequestContext = Depends(csrf_protected),
    services: PortalServices = Depends(get_services),
):
    """Credentials in; a fresh session (cookie) and the account's role out"""
    credentials = InputValidator.validate_login(body.model_dump())
    issued = services.authenticator.login(
        credentials.username,
        credentials.account_number,
        credentials.password,
        previous_token=context.token,
    )
    pair = services.csrf.issue(issued.record)

    set_session_cookie(response, issued.token)
    set_csrf_cookies(response, pair)
    return {
        "accountId": issued.actor.account_id,
        "username": issued.actor.username,
        "role": issued.actor.role.value,
        "isStaff": issued.actor.is_staff,
        "csrfToken": pair.token,
    }


@router.get("")
def current_session(context: RequestContext = Depends(current_context)):
    if context.actor is None:
        raise AuthenticationRequired()
    return {
        "accountId": context.actor.account_id,
        "username": context.actor.username,
        "role": context.actor.role.value,
        "isStaff": context.actor.is_staff,
    }


@router.delete("")
def logout(
    response: Response,
    context: RequestContext = Depends(csrf_protected_if_live),
    services: PortalServices = Depends(get_services),
):
    """Destroy the session; logging out without a live session is not an error"""
    if context.session is not None:
        services.authenticator.logout(context.token)
    clear_session_cookies(response)
    return {"status": "logged_out"}
