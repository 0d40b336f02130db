# Task Management Auth Models
from taskauth.models.base import BaseModel
from taskauth.models.refresh_token import RefreshToken
from taskauth.models.token_blacklist import BlacklistReason, TokenBlacklist
from taskauth.models.user import User

__all__ = [
    "BaseModel",
    "BlacklistReason",
    "RefreshToken",
    "TokenBlacklist",
    "User",
]
