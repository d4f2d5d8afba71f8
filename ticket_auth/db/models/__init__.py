# Models package (re-export feature modules for stable imports)
from .auth.account import Account, AuthProvider, AuthType, UserRole

__all__ = [
    "Account",
    "AuthProvider",
    "AuthType",
    "UserRole",
]
