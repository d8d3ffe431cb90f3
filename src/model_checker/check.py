"""Entry point: check an ORM model against a connected database.

Builds the model schema through a mapping provider and the live schema
through the introspector, then reconciles the two.

Also resolves database profiles from model-checker.toml for the CLI:
1. ``--profile`` argument
2. ``{env_prefix}DB_PROFILE`` environment variable
"""

import logging
import os
from typing import Any
from urllib.parse import quote

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from model_checker.config.models import DatabaseProfile, ModelCheckOptions
from model_checker.mapping.base import MappingProvider
from model_checker.mapping.declarative import SqlAlchemyMappingProvider
from model_checker.schema.comparator import reconcile
from model_checker.schema.introspector import InvalidDatabaseError, SchemaIntrospector

logger = logging.getLogger(__name__)


# ============================================================================
# Running a check
# ============================================================================


def run(
    bind: Engine | Connection | Session,
    model: Any,
    options: ModelCheckOptions | str = "",
) -> list[str]:
    """Check a model against the schema of a connected database.

    Args:
        bind: SQLAlchemy engine, connection or session for the database.
        model: A ``MappingProvider``, or a declarative base class /
            ``registry`` / ``MetaData`` (read with
            ``SqlAlchemyMappingProvider``).
        options: ``ModelCheckOptions``, or a schema name (e.g. ``"dbo"``)
            to run the default checks in that schema. An empty schema name
            compares every schema.

    Returns:
        Ordered list of discrepancy messages; empty if none were found.

    Raises:
        InvalidDatabaseError: If the database schema cannot be read.

    Example:
        >>> engine = create_engine("postgresql+psycopg://localhost/shop")
        >>> for error in run(engine, Base, "public"):
        ...     print(error)
    """
    if isinstance(options, str):
        options = ModelCheckOptions(database_schema_name=options)

    with SchemaIntrospector(bind) as introspector:
        provider = resolve_mapping_provider(model, default_schema=default_schema_name(bind))
        model_schema = provider.get_model_schema()
        live_schema = introspector.read_live_schema(options.database_schema_name)

    errors = reconcile(model_schema, live_schema, options)
    logger.info("Model check found %d discrepancies", len(errors))
    return errors


def resolve_mapping_provider(model: Any, default_schema: str = "") -> MappingProvider:
    """Wrap a SQLAlchemy model in a provider; providers pass through."""
    if isinstance(model, MappingProvider):
        return model
    return SqlAlchemyMappingProvider(model, default_schema=default_schema)


def default_schema_name(bind: Engine | Connection | Session) -> str:
    """Schema that unqualified tables live in (``public``, ``dbo``, ...)."""
    if isinstance(bind, Session):
        bind = bind.connection()
    try:
        return inspect(bind).default_schema_name or ""
    except SQLAlchemyError as e:
        raise InvalidDatabaseError(f"Error retrieving the data: {e}") from e


# ============================================================================
# Profiles
# ============================================================================


class ProfileNotFoundError(Exception):
    """Raised when no database profile is configured."""

    pass


def get_active_profile_name(profile_name: str | None = None, env_prefix: str = "") -> str:
    """Resolve the profile to check.

    Priority:
    1. Explicit *profile_name*
    2. ``{env_prefix}DB_PROFILE`` env var
    3. Raise ProfileNotFoundError

    Raises:
        ProfileNotFoundError: If no profile is configured
    """
    if profile_name:
        return profile_name

    env_var = f"{env_prefix}DB_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile

    raise ProfileNotFoundError(
        "No database profile configured.\n"
        f"Pass --profile <name> or set {env_var}=<name>."
    )


def get_profile(profiles: dict[str, DatabaseProfile], profile_name: str) -> DatabaseProfile:
    """Look up a profile by name.

    Raises:
        ProfileNotFoundError: If the profile is not in the config
    """
    if profile_name not in profiles:
        available = ", ".join(profiles) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{profile_name}' not found. Available: {available}"
        )
    return profiles[profile_name]


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution.

    Also points bare ``postgres://`` / ``postgresql://`` URLs at the
    psycopg (v3) driver and adds a connect timeout.

    Example:
        >>> resolve_url(DatabaseProfile(url="postgres://u:[YOUR-PASSWORD]@h/db", db_password="p@ss"))
        'postgresql+psycopg://u:p%40ss@h/db?connect_timeout=10'
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))

    # Normalize URL scheme:
    # 1. postgres:// -> postgresql:// (Heroku, Railway, Supabase alias)
    # 2. postgresql:// -> postgresql+psycopg://
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = "postgresql+psycopg://" + url[len("postgresql://"):]

    if url.startswith("postgresql+psycopg://") and "connect_timeout" not in url:
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}connect_timeout=10"
    return url


def create_profile_engine(profile: DatabaseProfile, **kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine for a profile."""
    return create_engine(resolve_url(profile), **kwargs)
