"""
Tenant Context Dependency
=========================

FastAPI dependency that authenticates the bearer token and exposes the
caller's organization and user to the endpoints.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from bulk_export.core.exceptions import AuthenticationError
from bulk_export.core.security import TokenProvider, get_token_provider


logger = logging.getLogger(__name__)

# Security scheme for Bearer tokens
security = HTTPBearer(auto_error=False)


@dataclass
class TenantContext:
    """
    Authenticated caller.

    Attributes:
        user_id: UUID of the user the token was issued to
        org_id: UUID of the organization (ACO) the user acts for
        token_id: Unique id of the presented token
    """
    user_id: str
    org_id: str
    token_id: str = ""


async def get_tenant_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    provider: TokenProvider = Depends(get_token_provider),
) -> TenantContext:
    """
    Require a valid access token.

    Raises:
        AuthenticationError: token missing, expired or malformed (401)
    """
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Authentication required")

    try:
        token_data = provider.validate(credentials.credentials)
    except AuthenticationError as e:
        logger.info("Rejected token: %s", e)
        raise

    request.state.user_id = token_data.user_id
    request.state.org_id = token_data.org_id
    return TenantContext(
        user_id=token_data.user_id,
        org_id=token_data.org_id,
        token_id=token_data.token_id,
    )
