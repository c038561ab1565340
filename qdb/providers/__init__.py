# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Provider Layer - Database engine integrations behind one contract.

The registry maps lower-cased names to provider instances. It is
populated at import time and only grows: register_provider() adds new
engines but never replaces an existing name.
"""

from types import MappingProxyType
from typing import Dict, List, Mapping

from qdb.errors import explain_unknown_provider
from qdb.exceptions import ProviderNotFoundError, RegistryError
from qdb.providers.base import (
    DatabaseProvider,
    ProviderDescriptor,
    ProviderOptions,
    ValidationResult,
)
from qdb.providers.mongodb import MongoDBProvider
from qdb.providers.mysql import MySQLProvider
from qdb.providers.postgres import PostgreSQLProvider
from qdb.providers.supabase import SupabaseProvider

_providers: Dict[str, DatabaseProvider] = {}


def register_provider(name: str, provider: DatabaseProvider) -> None:
    """
    Register a provider under a name.

    Args:
        name: Lookup name (stored lower-cased)
        provider: Provider instance

    Raises:
        RegistryError: If the name is already registered
    """
    key = name.lower()
    if not key:
        raise RegistryError("Provider name must not be empty")
    if key in _providers:
        raise RegistryError(
            f"Provider '{key}' is already registered",
            details={"registered": type(_providers[key]).__name__},
        )
    _providers[key] = provider


def get_provider(name: str) -> DatabaseProvider:
    """
    Get a provider by name (case-insensitive).

    Raises:
        ProviderNotFoundError: Listing the available names
    """
    provider = _providers.get(name.lower())
    if provider is None:
        raise ProviderNotFoundError(explain_unknown_provider(name, _providers.keys()))
    return provider


def has_provider(name: str) -> bool:
    return name.lower() in _providers


def get_provider_names() -> List[str]:
    """Registered names, aliases included."""
    return list(_providers.keys())


def get_all_providers() -> List[DatabaseProvider]:
    """Distinct provider instances (aliases collapse to one entry)."""
    seen: List[DatabaseProvider] = []
    for provider in _providers.values():
        if not any(provider is p for p in seen):
            seen.append(provider)
    return seen


def registry() -> Mapping[str, DatabaseProvider]:
    """Read-only view of the registry."""
    return MappingProxyType(_providers)


_postgres = PostgreSQLProvider()

register_provider("supabase", SupabaseProvider())
register_provider("mongodb", MongoDBProvider())
register_provider("mysql", MySQLProvider())
register_provider("postgres", _postgres)
register_provider("postgresql", _postgres)

DEFAULT_PROVIDER_NAME = "supabase"


__all__ = [
    "DatabaseProvider",
    "ProviderDescriptor",
    "ProviderOptions",
    "ValidationResult",
    "MongoDBProvider",
    "MySQLProvider",
    "PostgreSQLProvider",
    "SupabaseProvider",
    "register_provider",
    "get_provider",
    "has_provider",
    "get_provider_names",
    "get_all_providers",
    "registry",
    "DEFAULT_PROVIDER_NAME",
]
