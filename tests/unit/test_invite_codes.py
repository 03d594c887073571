"""Unit tests for invite code generation and lookup."""

import string

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from orgaccess.db.models import Leaderboard
from orgaccess.enums import LeaderboardVisibility
from orgaccess.leaderboards.invite_codes import (
    INVITE_CHARSET,
    INVITE_LENGTH,
    generate_invite_code,
    generate_unique_invite_code,
    normalize_invite_code,
    resolve_invite_code,
)
from orgaccess.time_utils import utcnow


class TestInviteCodes:
    """Test invite code generation."""

    def test_code_is_8_chars(self):
        code = generate_invite_code()
        assert len(code) == INVITE_LENGTH
        assert len(code) == 8

    def test_code_charset_is_correct(self):
        assert INVITE_CHARSET == string.ascii_uppercase + string.digits

    def test_code_only_contains_valid_chars(self):
        for _ in range(100):
            code = generate_invite_code()
            assert all(c in INVITE_CHARSET for c in code)

    def test_codes_are_unique(self):
        codes = {generate_invite_code() for _ in range(1000)}
        assert len(codes) == 1000

    def test_normalize_invite_code(self):
        assert normalize_invite_code("abc12345") == "ABC12345"
        assert normalize_invite_code(" Abc12345 ") == "ABC12345"


async def _board(db: AsyncSession, creator_id: str, code: str, visibility=LeaderboardVisibility.AD_HOC, **fields):
    board = Leaderboard(
        name="Quiz",
        visibility=visibility.value,
        created_by_user_id=creator_id,
        invite_code=code,
        **fields,
    )
    db.add(board)
    await db.commit()
    return board


class TestResolveInviteCode:
    @pytest.mark.asyncio
    async def test_resolves_case_insensitively(self, db_session: AsyncSession, make_user):
        creator = await make_user("creator")
        board = await _board(db_session, creator.id, "QUIZ2024")

        assert await resolve_invite_code(db_session, "quiz2024") == board.id

    @pytest.mark.asyncio
    async def test_unknown_code(self, db_session: AsyncSession):
        assert await resolve_invite_code(db_session, "NOPE0000") is None

    @pytest.mark.asyncio
    async def test_deleted_board_is_not_resolved(self, db_session: AsyncSession, make_user):
        creator = await make_user("creator")
        await _board(db_session, creator.id, "GONE0000", deleted_at=utcnow())

        assert await resolve_invite_code(db_session, "GONE0000") is None

    @pytest.mark.asyncio
    async def test_unique_code_is_not_taken(self, db_session: AsyncSession, make_user):
        creator = await make_user("creator")
        taken = await _board(db_session, creator.id, "TAKEN000")

        code = await generate_unique_invite_code(db_session)
        assert code != taken.invite_code
        assert len(code) == INVITE_LENGTH

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, db_session: AsyncSession, make_user, monkeypatch):
        creator = await make_user("creator")
        await _board(db_session, creator.id, "SAME0000")
        monkeypatch.setattr("orgaccess.leaderboards.invite_codes.generate_invite_code", lambda: "SAME0000")

        with pytest.raises(RuntimeError):
            await generate_unique_invite_code(db_session)
