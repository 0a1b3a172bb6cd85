"""
Account Routes
Customer self-registration and staff-only creation of staff accounts
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from routes.dependencies import RequestContext, csrf_protected, get_services
from services.service_container import PortalServices
from utils.json_serialization import serialize_account

logger = logging.getLogger(__name__)

router = APIRouter(tags=["accounts"])


class RegistrationRequest(BaseModel):
    fullName: Optional[Any] = None
    idNumber: Optional[Any] = None
    accountNumber: Optional[Any] = None
    username: Optional[Any] = None
    password: Optional[Any] = None


@router.post("/accounts", status_code=201)
def register(
    body: RegistrationRequest,
    context: RequestContext = Depends(csrf_protected),
    services: PortalServices = Depends(get_services),
):
    account = services.accounts.register_customer(context.actor, body.model_dump())
    return serialize_account(account)


@router.post("/staff-accounts", status_code=201)
def create_staff_account(
    body: RegistrationRequest,
    context: RequestContext = Depends(csrf_protected),
    services: PortalServices = Depends(get_services),
):
    account = services.accounts.create_staff_account(context.actor, body.model_dump())
    return serialize_account(account)
