import asyncio

import pytest

from stackit.errors import ConflictError
from stackit.errors import ForbiddenError
from stackit.errors import NotFoundError
from stackit.errors import ValidationError
from stackit.models.enums import UserRole
from stackit.models.enums import VoteDirection


@pytest.mark.asyncio
async def test_create_profile(core):
    profile = await core.identity.create_profile("alice", "alice@example.com", "hash")

    assert profile.id is not None
    assert profile.role == UserRole.USER
    assert (await core.identity.find_by_id(profile.id)).username == "alice"
    assert (await core.identity.find_by_username("alice")).id == profile.id
    assert (await core.identity.find_by_email("alice@example.com")).id == profile.id


@pytest.mark.asyncio
async def test_lookups_of_unknown_profiles(core):
    assert await core.identity.find_by_id(12345) is None
    assert await core.identity.find_by_username("nobody") is None
    assert await core.identity.exists_by_username("nobody") is False
    assert await core.identity.exists_by_email("nobody@example.com") is False


@pytest.mark.asyncio
async def test_exists_checks(core, asker):
    assert await core.identity.exists_by_username("asker") is True
    assert await core.identity.exists_by_email("asker@example.com") is True
    # Usernames are exact matches
    assert await core.identity.exists_by_username("Asker") is False


@pytest.mark.asyncio
async def test_duplicate_username_conflicts(core, asker):
    with pytest.raises(ConflictError):
        await core.identity.create_profile("asker", "different@example.com", "hash")


@pytest.mark.asyncio
async def test_duplicate_email_conflicts(core, asker):
    with pytest.raises(ConflictError):
        await core.identity.create_profile("different", "asker@example.com", "hash")


@pytest.mark.asyncio
async def test_concurrent_registration_lets_exactly_one_win(core):
    results = await asyncio.gather(
        core.identity.create_profile("racer", "racer-1@example.com", "hash"),
        core.identity.create_profile("racer", "racer-2@example.com", "hash"),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], ConflictError)
    assert (await core.identity.find_by_username("racer")).id == winners[0].id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "username,email,password_hash",
    [
        ("", "a@example.com", "hash"),
        ("x" * 51, "a@example.com", "hash"),
        (" padded ", "a@example.com", "hash"),
        ("bob", "not-an-email", "hash"),
        ("bob", "bob@example.com", ""),
    ],
)
async def test_invalid_registration_input(core, username, email, password_hash):
    with pytest.raises(ValidationError):
        await core.identity.create_profile(username, email, password_hash)

    assert await core.identity.exists_by_email(email) is False


@pytest.mark.asyncio
async def test_delete_own_profile_removes_everything_it_owns(core, asker, answerer, voter, sample_question):
    # answerer: one answer on asker's question, one vote on a voter answer
    answer = await core.answers.post_answer(sample_question.id, answerer.id, "Use dict unpacking.")
    other = await core.answers.post_answer(sample_question.id, voter.id, "Use update().")
    await core.answers.cast_vote(other.id, answerer.id, VoteDirection.UP)
    await core.answers.accept_answer(answer.id, asker.id)
    await core.drain()

    await core.identity.delete_profile(answerer.id, answerer.id)

    assert await core.identity.find_by_id(answerer.id) is None
    assert await core.answers.get_answer(answer.id) is None
    assert await core.notifications.list_for_profile(answerer.id) == []
    # Tally rolled back with the vote
    assert (await core.answers.get_answer(other.id)).upvotes == 0
    # Question survives but no longer points at the deleted answer
    question = await core.questions.get_question(sample_question.id)
    assert question is not None
    assert question.accepted_answer_id is None


@pytest.mark.asyncio
async def test_deleting_asker_removes_questions_and_their_answers(core, asker, sample_question, sample_answer):
    await core.identity.delete_profile(asker.id, asker.id)

    assert await core.questions.get_question(sample_question.id) is None
    assert await core.answers.get_answer(sample_answer.id) is None


@pytest.mark.asyncio
async def test_admin_may_delete_other_profiles(core, admin, voter):
    await core.identity.delete_profile(voter.id, admin.id)

    assert await core.identity.exists_by_username("voter") is False


@pytest.mark.asyncio
async def test_users_may_not_delete_other_profiles(core, asker, voter):
    with pytest.raises(ForbiddenError):
        await core.identity.delete_profile(voter.id, asker.id)

    assert await core.identity.exists_by_username("voter") is True


@pytest.mark.asyncio
async def test_delete_unknown_profile(core, admin):
    with pytest.raises(NotFoundError):
        await core.identity.delete_profile(98765, admin.id)
