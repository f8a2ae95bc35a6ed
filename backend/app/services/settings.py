"""Runtime key/value settings (API keys, system prompt).

Secrets resolve environment-first, then from the app_settings table, on
every lookup, so a key saved from the admin panel takes effect without a
restart. Raw secret values are never logged.
"""

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import PLACEHOLDER_GEMINI_KEY, settings
from app.models.setting import AppSetting

logger = structlog.get_logger(__name__)

GEMINI_API_KEY = "gemini_api_key"
GROQ_API_KEY = "groq_api_key"
SYSTEM_PROMPT = "system_prompt"

SECRET_KEYS = frozenset({GEMINI_API_KEY, GROQ_API_KEY})
_PLACEHOLDERS = frozenset({"", PLACEHOLDER_GEMINI_KEY})


def mask_secret(value: str) -> str:
    """Display form of a secret: eight asterisks plus the last four characters."""
    if not value:
        return ""
    return "********" + value[-4:]


def _env_value(key: str) -> str:
    value = (getattr(settings, key, "") or "").strip()
    return "" if value in _PLACEHOLDERS else value


# ---------------------------------------------------------------------------
# Request-scoped helpers (admin API, engine)
# ---------------------------------------------------------------------------

async def get_setting(db: AsyncSession, key: str) -> str | None:
    row = await db.get(AppSetting, key)
    return row.value if row is not None else None


async def upsert_setting(db: AsyncSession, key: str, value: str) -> AppSetting:
    """Last write wins."""
    row = await db.get(AppSetting, key)
    if row is None:
        row = AppSetting(key=key, value=value)
        db.add(row)
    else:
        row.value = value
    await db.flush()
    logger.info(
        "app_setting_saved",
        key=key,
        secret=key in SECRET_KEYS,
        configured=bool(value),
    )
    return row


async def list_settings(db: AsyncSession) -> dict[str, str]:
    """All stored settings with secret values masked."""
    rows = (await db.execute(select(AppSetting).order_by(AppSetting.key))).scalars().all()
    return {
        row.key: mask_secret(row.value) if row.key in SECRET_KEYS else row.value
        for row in rows
    }


# ---------------------------------------------------------------------------
# Application-scoped credential source (LLM gateway)
# ---------------------------------------------------------------------------

class CredentialResolver:
    """Looks up API keys with its own short-lived DB sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: str) -> str:
        """Return the configured value for ``key`` or "" when unset.

        A storage failure is logged and reported as "unset" so callers
        degrade instead of failing the turn.
        """
        value = _env_value(key)
        if value:
            return value
        try:
            async with self._session_factory() as db:
                stored = await get_setting(db, key)
        except SQLAlchemyError as e:
            logger.warning("credential_lookup_failed", key=key, error=str(e))
            return ""
        stored = (stored or "").strip()
        return "" if stored in _PLACEHOLDERS else stored
