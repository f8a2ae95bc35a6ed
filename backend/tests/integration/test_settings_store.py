"""Integration tests for runtime settings and the credential resolver.

Tests:
  - mask_secret(): asterisks plus last four characters
  - upsert_setting(): last write wins
  - list_settings(): secrets masked, plain values verbatim
  - CredentialResolver: env wins, DB fallback, placeholder treated as unset
"""

from __future__ import annotations

import pytest

from app.core.config import PLACEHOLDER_GEMINI_KEY, settings
from app.services.settings import (
    GEMINI_API_KEY,
    GROQ_API_KEY,
    SYSTEM_PROMPT,
    CredentialResolver,
    get_setting,
    list_settings,
    mask_secret,
    upsert_setting,
)


@pytest.fixture
def no_env_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "gemini_api_key", "")
    monkeypatch.setattr(settings, "groq_api_key", "")


class TestMaskSecret:
    def test_masks_all_but_last_four(self) -> None:
        assert mask_secret("AIzaSyABCDEF1234") == "********1234"

    def test_empty(self) -> None:
        assert mask_secret("") == ""


class TestSettingsTable:
    @pytest.mark.asyncio
    async def test_upsert_last_write_wins(self, db) -> None:
        await upsert_setting(db, SYSTEM_PROMPT, "v1")
        await upsert_setting(db, SYSTEM_PROMPT, "v2")
        assert await get_setting(db, SYSTEM_PROMPT) == "v2"

    @pytest.mark.asyncio
    async def test_list_masks_secrets(self, db) -> None:
        await upsert_setting(db, GEMINI_API_KEY, "gemini-secret-9876")
        await upsert_setting(db, SYSTEM_PROMPT, "Seja cordial.")
        listed = await list_settings(db)
        assert listed[GEMINI_API_KEY] == "********9876"
        assert listed[SYSTEM_PROMPT] == "Seja cordial."


class TestCredentialResolver:
    @pytest.mark.asyncio
    async def test_env_value_wins(self, session_factory, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "gemini_api_key", "env-key")
        async with session_factory() as db:
            await upsert_setting(db, GEMINI_API_KEY, "db-key")
            await db.commit()
        assert await CredentialResolver(session_factory).get(GEMINI_API_KEY) == "env-key"

    @pytest.mark.asyncio
    async def test_db_fallback(self, session_factory, no_env_keys) -> None:
        async with session_factory() as db:
            await upsert_setting(db, GROQ_API_KEY, "db-groq")
            await db.commit()
        assert await CredentialResolver(session_factory).get(GROQ_API_KEY) == "db-groq"

    @pytest.mark.asyncio
    async def test_placeholder_env_is_unset(self, session_factory, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "gemini_api_key", PLACEHOLDER_GEMINI_KEY)
        assert await CredentialResolver(session_factory).get(GEMINI_API_KEY) == ""

    @pytest.mark.asyncio
    async def test_nothing_configured(self, session_factory, no_env_keys) -> None:
        assert await CredentialResolver(session_factory).get(GROQ_API_KEY) == ""
