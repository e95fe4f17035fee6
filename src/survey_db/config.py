"""Connection settings for the survey database.

``DATABASE_URL`` wins when set; otherwise the URL is assembled from
``PG_HOST`` / ``PG_PORT`` / ``PG_USER`` / ``PG_PASSWORD`` / ``PG_DATABASE``.
The server, the CLIs and the sweep use the asyncpg form; Alembic uses the
plain libpq form.
"""

import os

_SCHEMES = ("postgresql+asyncpg://", "postgresql://", "postgres://")


def _configured_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    return "postgresql://{user}:{password}@{host}:{port}/{database}".format(
        user=os.getenv("PG_USER", "survey"),
        password=os.getenv("PG_PASSWORD", "survey"),
        host=os.getenv("PG_HOST", "localhost"),
        port=os.getenv("PG_PORT", "5432"),
        database=os.getenv("PG_DATABASE", "survey_bot"),
    )


def _with_scheme(url: str, scheme: str) -> str:
    for known in _SCHEMES:
        if url.startswith(known):
            return scheme + url[len(known):]
    return url


def get_sync_url() -> str:
    """libpq URL for Alembic."""
    return _with_scheme(_configured_url(), "postgresql://")


def get_async_url() -> str:
    """asyncpg URL for the runtime engine."""
    return _with_scheme(_configured_url(), "postgresql+asyncpg://")
