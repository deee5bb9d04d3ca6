"""
Accounts Package

Local account backends that exchange a client's credential for the profile
name it may join as.

Modules:
- resolvers: AccountResolver interface, static-file and remote-API backends
"""

from .resolvers import (
    AccountFileError,
    AccountResolver,
    RemoteAccountResolver,
    StaticAccountResolver,
    build_account_resolver,
    load_account_file,
)

__all__ = [
    "AccountFileError",
    "AccountResolver",
    "RemoteAccountResolver",
    "StaticAccountResolver",
    "build_account_resolver",
    "load_account_file",
]
