"""
Account backends behind one capability interface.
"""

from .base import AccountAbstract, AuthToken, create_account
from .local import LocalAccount
from .remote import RemoteAccount

__all__ = [
    "AccountAbstract",
    "AuthToken",
    "LocalAccount",
    "RemoteAccount",
    "create_account",
]
