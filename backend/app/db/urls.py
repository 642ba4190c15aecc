from __future__ import annotations

DRIVER_SCHEMES = {"postgresql": "postgresql+psycopg", "postgres": "postgresql+psycopg"}


def normalize_database_url(database_url: str) -> str:
    """Pin bare postgres URLs to the psycopg driver, which serves sync and async engines."""
    if "://" not in database_url:
        return database_url
    scheme, rest = database_url.split("://", 1)
    driver = DRIVER_SCHEMES.get(scheme)
    return f"{driver}://{rest}" if driver else database_url
