from datetime import datetime, timezone
from urllib.parse import urlparse, parse_qs, urlencode, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from bidmarket.config import settings


def _prepare_engine_args() -> tuple[str, dict]:
    """Strip asyncpg-incompatible URL params and build correct connect_args.

    asyncpg does not accept ``sslmode`` or ``channel_binding`` as URL query
    parameters; it requires SSL to be passed as a boolean flag in
    connect_args instead.  This function:

    1. Strips ``sslmode`` and ``channel_binding`` from the query string.
    2. Translates ``sslmode=require`` → ``connect_args={"ssl": True}``.
    3. Detects pooler endpoints (PgBouncer in transaction mode) and sets
       ``statement_cache_size=0`` to prevent "prepared statement already
       exists" errors.

    SQLite URLs (local development and tests) pass through untouched.
    """
    raw_url = settings.DATABASE_URL
    if raw_url.startswith("sqlite"):
        return raw_url, {}

    parsed = urlparse(raw_url)
    params = parse_qs(parsed.query, keep_blank_values=True)

    sslmode = params.pop("sslmode", [None])[0]
    params.pop("channel_binding", None)

    new_query = urlencode({k: v[0] for k, v in params.items()})
    clean_url = urlunparse(parsed._replace(query=new_query))

    connect_args: dict = {}

    is_local = "localhost" in raw_url or "127.0.0.1" in raw_url
    needs_ssl = sslmode in ("require", "verify-ca", "verify-full") or not is_local
    if needs_ssl:
        connect_args["ssl"] = True

    if parsed.hostname and "-pooler." in parsed.hostname:
        connect_args["statement_cache_size"] = 0

    return clean_url, connect_args


_DB_URL, _CONNECT_ARGS = _prepare_engine_args()

_ENGINE_KWARGS: dict = {"echo": settings.APP_ENV == "development", "connect_args": _CONNECT_ARGS}
if not _DB_URL.startswith("sqlite"):
    _ENGINE_KWARGS.update(pool_pre_ping=True, pool_size=10, max_overflow=20)

engine = create_async_engine(_DB_URL, **_ENGINE_KWARGS)

AsyncSessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


def utcnow() -> datetime:
    """Timezone-aware now; used as the Python-side default for every timestamp column."""
    return datetime.now(tz=timezone.utc)
