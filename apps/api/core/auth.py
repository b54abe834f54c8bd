"""Supabase client dependencies.

The API talks to Supabase with the caller's JWT so row-level security
applies to uploads and job reads. The import worker uses the service-role
client because it runs outside any request.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from supabase import Client, create_client

from apps.api.core.config import Settings, get_settings


async def get_user_token(authorization: str = Header(default="")) -> str:
    """Extract Bearer token from Authorization header."""
    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail="Missing or invalid Authorization header. Expected: Bearer <token>",
        )

    token = authorization[7:].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return token


async def get_user_client(token: str = Depends(get_user_token)) -> Client:
    """Provide a Supabase client authenticated with the user's JWT.

    The refresh token is empty: each request carries its own access token
    and the API never refreshes sessions.
    """
    settings = get_settings()
    client = create_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
    client.auth.set_session(token, "")
    return client


def get_service_client(settings: Optional[Settings] = None) -> Client:
    """Provide a service-role Supabase client (bypasses RLS)."""
    settings = settings or get_settings()
    if not settings.SUPABASE_SERVICE_KEY:
        raise RuntimeError("SUPABASE_SERVICE_KEY is not configured")
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
