"""
Tests for the authentication service.
"""

import asyncio

import pytest

from gatehouse.auth.jwt import TokenService
from gatehouse.errors import InvalidToken
from gatehouse.services.auth import AuthService, TokenPair

from conftest import USER_PASSWORD


class TestRefresh:
    """Tests for refresh token rotation."""

    async def login(self, session_factory, tokens) -> TokenPair:
        async with session_factory() as session:
            _, pair = await AuthService(session, tokens).login("alice@example.com", USER_PASSWORD)
            await session.commit()
            return pair

    async def refresh(self, session_factory, tokens, refresh_token: str) -> TokenPair:
        async with session_factory() as session:
            try:
                pair = await AuthService(session, tokens).refresh(refresh_token)
                await session.commit()
                return pair
            except Exception:
                await session.rollback()
                raise

    @pytest.mark.asyncio
    async def test_refresh_rotates(self, session_factory, alice):
        tokens = TokenService.from_settings()
        pair = await self.login(session_factory, tokens)

        rotated = await self.refresh(session_factory, tokens, pair.refresh.token)

        assert rotated.refresh.jti != pair.refresh.jti
        assert rotated.refresh.sid == pair.refresh.sid
        with pytest.raises(InvalidToken):
            await self.refresh(session_factory, tokens, pair.refresh.token)

    @pytest.mark.asyncio
    async def test_concurrent_refresh_same_token(self, session_factory, alice):
        """Test two simultaneous refreshes of one token yield one pair and one 401."""
        tokens = TokenService.from_settings()
        pair = await self.login(session_factory, tokens)

        results = await asyncio.gather(
            self.refresh(session_factory, tokens, pair.refresh.token),
            self.refresh(session_factory, tokens, pair.refresh.token),
            return_exceptions=True,
        )

        assert sorted(type(r).__name__ for r in results) == ["InvalidToken", "TokenPair"]
        failure = next(r for r in results if isinstance(r, Exception))
        assert failure.status_code == 401

    @pytest.mark.asyncio
    async def test_refresh_without_token(self, session_factory):
        with pytest.raises(InvalidToken):
            await self.refresh(session_factory, TokenService.from_settings(), None)
