"""
Caller identity for the lifecycle handlers.
The Cognito user pool sub doubles as the profile id stored in
requesterId / contractorId / initiatorId.
"""
from typing import Optional


def get_profile_id(event: dict) -> Optional[str]:
    """Profile id of the authenticated caller, or None when no claims are present."""
    claims = ((event.get('requestContext') or {}).get('authorizer') or {}).get('claims') or {}
    return claims.get('sub') or None
