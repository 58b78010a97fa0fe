# fastapi dependency injection
# provides the caller identity, per-request config resolution and the invitation services

import logging
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config import Settings, settings
from app.errors import PermissionDenied, Unauthenticated
from app.models.user import AuthContext
from app.services.auth_service import decode_token
from app.services.config_resolver import ConfigResolver
from app.services.db import Database, get_db
from app.services.invitation_queries import InvitationQueries
from app.services.invitation_store import InvitationStore

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthContext:
    """extract and validate the caller identity from the bearer token"""
    if credentials is None:
        raise Unauthenticated("Sign in required.")

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise Unauthenticated("Invalid or expired token")

    if payload.get("type", "access") != "access":
        raise Unauthenticated("Invalid token type")

    uid = payload.get("sub")
    if not isinstance(uid, str) or not uid:
        raise Unauthenticated("Token missing subject")

    # optional claims are informational; unexpected shapes are dropped, not rejected
    role = payload.get("role")
    email = payload.get("email")
    return AuthContext(
        uid=uid,
        role=role if isinstance(role, str) else None,
        email=email if isinstance(email, str) else None,
    )


def resolve_scope(requested: Optional[str], caller: AuthContext, message: str) -> str:
    """client-supplied identity arguments must equal the caller's own identity"""
    scope = requested or caller.uid
    if scope != caller.uid:
        raise PermissionDenied(message)
    return scope


async def get_config_resolver(db: Database = Depends(get_db)) -> ConfigResolver:
    """fresh resolver per request; environment is re-read every time"""
    return ConfigResolver(db, Settings())


async def get_invitation_store(db: Database = Depends(get_db)) -> InvitationStore:
    return InvitationStore(db, ttl_hours=settings.INVITATION_TTL_HOURS)


async def get_invitation_queries(
    store: InvitationStore = Depends(get_invitation_store),
) -> InvitationQueries:
    return InvitationQueries(store)
