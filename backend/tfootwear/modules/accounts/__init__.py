"""
Accounts Module - Authentication, users and administration.
"""

from tfootwear.modules.accounts.admin import AdminService, ensure_admin
from tfootwear.modules.accounts.auth import AuthService
from tfootwear.modules.accounts.users import UserService

__all__ = [
    "AdminService",
    "AuthService",
    "UserService",
    "ensure_admin",
]
