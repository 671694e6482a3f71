"""
Caller credentials: Meta access token and ad account id.

The token is passed through to the Graph API and never stored or logged.
"""
from typing import Optional
from fastapi import Depends, Header, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from app.services.meta_ads import normalize_account_id

security = HTTPBearer(auto_error=False)


def get_access_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_access_token: Optional[str] = Header(None),
) -> str:
    """
    Read the access token from the Authorization bearer header, falling back
    to X-Access-Token. Raises 401 if neither is present.
    """
    if credentials and credentials.credentials:
        return credentials.credentials
    if x_access_token:
        return x_access_token
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"kind": "REQUEST_ERROR", "message": "Missing Meta access token"},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_account_id(
    account_id: Optional[str] = Query(None, alias="accountId"),
    x_account_id: Optional[str] = Header(None),
) -> str:
    """Ad account id from the accountId query parameter or X-Account-Id header, act_-prefixed."""
    value = (account_id or x_account_id or "").strip()
    if not value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"kind": "REQUEST_ERROR", "message": "accountId is required"},
        )
    return normalize_account_id(value)
