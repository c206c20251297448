from .auth import ProfileUpdate, Token, UserCreate, UserResponse

__all__ = [
    "ProfileUpdate",
    "Token",
    "UserCreate",
    "UserResponse",
]
