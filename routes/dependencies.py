"""
Request dependencies shared by the portal routers: service lookup, session
resolution from cookies, the CSRF check for mutating routes and the cookie
helpers for the session and anti-forgery transport.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request, Response

from config import Config
from middleware.csrf_protection import CsrfTokenPair
from services.authorization_gate import Actor
from services.credential_store import SessionRecord
from services.service_container import PortalServices

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """What the cookies of one request resolve to"""
    token: Optional[str]
    session: Optional[SessionRecord]
    actor: Optional[Actor]


def get_services(request: Request) -> PortalServices:
    return request.app.state.services


def current_context(request: Request, services: PortalServices = Depends(get_services)) -> RequestContext:
    """Resolve the session cookie; unknown, expired or malformed tokens resolve to no session"""
    token = request.cookies.get(Config.SESSION_COOKIE_NAME)
    record = services.authenticator.lookup(token)
    if record is None:
        return RequestContext(token=None, session=None, actor=None)
    return RequestContext(token=token, session=record, actor=services.authenticator.actor_for_session(record))


def csrf_protected(
    request: Request,
    context: RequestContext = Depends(current_context),
    services: PortalServices = Depends(get_services),
) -> RequestContext:
    """Gate for every mutating route; runs before any business logic"""
    services.csrf.require_valid(
        context.session,
        request.headers.get(services.csrf.get_csrf_header_name()),
        request.cookies.get(Config.CSRF_SECRET_COOKIE_NAME),
        operation=f"{request.method} {request.url.path}",
    )
    return context


def csrf_protected_if_live(
    request: Request,
    context: RequestContext = Depends(current_context),
    services: PortalServices = Depends(get_services),
) -> RequestContext:
    """csrf_protected, except that a request without a live session has nothing to forge"""
    if context.session is None:
        return context
    return csrf_protected(request, context, services)


def set_session_cookie(response: Response, token: str, ttl_minutes: Optional[int] = None) -> None:
    response.set_cookie(
        Config.SESSION_COOKIE_NAME,
        token,
        max_age=(ttl_minutes or Config.SESSION_TTL_MINUTES) * 60,
        httponly=True,
        secure=Config.COOKIE_SECURE,
        samesite=Config.COOKIE_SAMESITE,
        path="/",
    )


def set_csrf_cookies(response: Response, pair: CsrfTokenPair) -> None:
    # The secret stays out of reach of page scripts; the token is meant to be read
    response.set_cookie(
        Config.CSRF_SECRET_COOKIE_NAME,
        pair.secret,
        httponly=True,
        secure=Config.COOKIE_SECURE,
        samesite=Config.COOKIE_SAMESITE,
        path="/",
    )
    response.set_cookie(
        Config.CSRF_TOKEN_COOKIE_NAME,
        pair.token,
        httponly=False,
        secure=Config.COOKIE_SECURE,
        samesite=Config.COOKIE_SAMESITE,
        path="/",
    )


def clear_session_cookies(response: Response) -> None:
    for name in (Config.SESSION_COOKIE_NAME, Config.CSRF_SECRET_COOKIE_NAME, Config.CSRF_TOKEN_COOKIE_NAME):
        response.delete_cookie(name, path="/")
