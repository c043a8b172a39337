"""Authorization collaborator.

Sessions are handled by the fronting gateway, which forwards the already
validated user name. This module only reads it and checks feature grants.
"""

from fastapi import Request

from models import ConfigSnapshot

IDENTITY_HEADER = "X-Auth-User"
AI_RECOMMEND_FEATURE = "ai-recommend"


def get_identity(request: Request) -> str | None:
    username = request.headers.get(IDENTITY_HEADER, "").strip()
    return username or None


def has_permission(identity: str, feature: str, config: ConfigSnapshot) -> bool:
    """An empty allow-list grants the feature to every signed-in user."""
    if feature == AI_RECOMMEND_FEATURE:
        allowed = config.ai_recommend.allowed_users
        return not allowed or identity in allowed
    return False
