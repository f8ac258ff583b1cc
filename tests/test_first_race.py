import asyncio
from dataclasses import replace

import pytest

from soulxbot.models.user import User
from soulxbot.services.first_race import FirstRaceResolver
from tests.conftest import OWNER_ID, START


@pytest.fixture
def resolver(db, chat):
    return FirstRaceResolver(db.session_repo, db.exclusion_repo, chat)


@pytest.fixture
def alice(db):
    return db.add_user("2001", "alice", "Alice")


@pytest.fixture
def bob(db):
    return db.add_user("2002", "bob", "Bob")


@pytest.mark.asyncio
class TestEligibility:
    async def test_owner_is_not_eligible(self, resolver, owner):
        assert await resolver.is_eligible(owner, owner.user) is False

    async def test_regular_chatter_is_eligible(self, resolver, owner, alice):
        assert await resolver.is_eligible(owner, alice) is True

    async def test_owner_scoped_exclusion(self, resolver, db, owner, alice):
        db.exclusions.append((OWNER_ID, "alice"))
        assert await resolver.is_eligible(owner, alice) is False

    async def test_other_owner_exclusion_does_not_apply(self, resolver, db, owner, alice):
        db.exclusions.append(("someone-else", "alice"))
        assert await resolver.is_eligible(owner, alice) is True

    async def test_global_exclusion_is_case_insensitive(self, resolver, db, owner):
        db.exclusions.append((None, "streamelements"))
        bot_user = User(id="3003", username="StreamElements")
        assert await resolver.is_eligible(owner, bot_user) is False


@pytest.mark.asyncio
class TestEvaluate:
    async def test_first_eligible_chatter_wins(self, resolver, db, chat, owner, alice):
        session = db.add_session(OWNER_ID, START)

        assert await resolver.evaluate(owner, session, alice) is True
        assert db.sessions[session.id].first_user_id == alice.id
        assert session.first_user_id == alice.id
        assert chat.messages == [(OWNER_ID, "Congratulations Alice! You're first!")]

    async def test_only_one_winner_per_session(self, resolver, db, chat, owner, alice, bob):
        session = db.add_session(OWNER_ID, START)
        await resolver.evaluate(owner, session, alice)

        assert await resolver.evaluate(owner, session, bob) is False
        assert db.sessions[session.id].first_user_id == alice.id
        assert len(chat.messages) == 1

    async def test_owner_message_does_not_win(self, resolver, db, chat, owner):
        session = db.add_session(OWNER_ID, START)
        assert await resolver.evaluate(owner, session, owner.user) is False
        assert db.sessions[session.id].first_user_id is None
        assert chat.messages == []

    async def test_excluded_chatter_does_not_win(self, resolver, db, chat, owner, alice, bob):
        db.exclusions.append((None, "alice"))
        session = db.add_session(OWNER_ID, START)

        assert await resolver.evaluate(owner, session, alice) is False
        assert await resolver.evaluate(owner, session, bob) is True
        assert db.sessions[session.id].first_user_id == bob.id

    async def test_disabled_feature(self, resolver, db, chat, owner, alice):
        owner.config.first_enabled = False
        session = db.add_session(OWNER_ID, START)
        assert await resolver.evaluate(owner, session, alice) is False
        assert db.sessions[session.id].first_user_id is None

    async def test_no_session_or_closed_session(self, resolver, db, chat, owner, alice):
        assert await resolver.evaluate(owner, None, alice) is False
        closed = db.add_session(OWNER_ID, START, ended_at=START)
        assert await resolver.evaluate(owner, closed, alice) is False
        assert chat.messages == []

    async def test_concurrent_claims_have_exactly_one_winner(self, resolver, db, chat, owner, alice, bob):
        session = db.add_session(OWNER_ID, START)
        # Each message handler holds its own snapshot of the session
        view_a, view_b = replace(session), replace(session)

        results = await asyncio.gather(
            resolver.evaluate(owner, view_a, alice),
            resolver.evaluate(owner, view_b, bob),
        )

        stored_winner = db.sessions[session.id].first_user_id
        assert sorted(results) == [False, True]
        assert stored_winner in (alice.id, bob.id)
        # The loser's view reflects the persisted winner, not its own guess
        assert view_a.first_user_id == stored_winner
        assert view_b.first_user_id == stored_winner
        winner_name = "Alice" if stored_winner == alice.id else "Bob"
        assert chat.messages == [(OWNER_ID, f"Congratulations {winner_name}! You're first!")]

    async def test_stale_view_is_reconciled(self, resolver, db, chat, owner, alice, bob):
        session = db.add_session(OWNER_ID, START)
        stale = replace(session)
        await resolver.evaluate(owner, session, alice)

        assert await resolver.evaluate(owner, stale, bob) is False
        assert stale.first_user_id == alice.id
        assert len(chat.messages) == 1

    async def test_session_closed_before_claim(self, resolver, db, chat, owner, alice):
        session = db.add_session(OWNER_ID, START)
        db.sessions[session.id].ended_at = START

        assert await resolver.evaluate(owner, session, alice) is False
        assert db.sessions[session.id].first_user_id is None
        assert chat.messages == []
