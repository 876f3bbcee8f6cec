import logging

import pytest

from stackit.core import StackitCore
from stackit.errors import ForbiddenError
from stackit.errors import NotFoundError
from stackit.events import EventType
from stackit.models.enums import NotificationKind
from stackit.models.enums import VoteDirection
from stackit.services.notification_dispatcher import NotificationDispatcher


async def _kinds(core, profile_id):
    return [n.kind for n in await core.notifications.list_for_profile(profile_id)]


@pytest.mark.asyncio
async def test_question_answer_accept_vote_flow(core):
    """Ask, answer, accept, upvote, retract: the inbox of each participant."""
    p1 = await core.identity.create_profile("p1", "p1@example.com", "h1")
    p2 = await core.identity.create_profile("p2", "p2@example.com", "h2")
    p3 = await core.identity.create_profile("p3", "p3@example.com", "h3")

    question = await core.questions.post_question(p1.id, "How to X?", "Details", ["python"])
    answer = await core.answers.post_answer(question.id, p2.id, "Do Y.")
    await core.drain()

    inbox = await core.notifications.list_unread(p1.id)
    assert [n.kind for n in inbox] == [NotificationKind.NEW_ANSWER]
    assert inbox[0].message == 'Your question "How to X?" received a new answer!'
    assert inbox[0].answer_id == answer.id

    await core.answers.accept_answer(answer.id, p1.id)
    await core.drain()

    assert await _kinds(core, p2.id) == [NotificationKind.ANSWER_ACCEPTED]
    assert (await core.notifications.list_unread(p2.id))[0].message == 'Your answer to "How to X?" was accepted!'

    result = await core.answers.cast_vote(answer.id, p3.id, VoteDirection.UP)
    await core.drain()

    assert result.upvotes == 1
    kinds = await _kinds(core, p2.id)
    assert sorted(kinds) == sorted([NotificationKind.ANSWER_ACCEPTED, NotificationKind.VOTE_RECEIVED])

    # Same direction again retracts; a retraction is not news.
    result = await core.answers.cast_vote(answer.id, p3.id, VoteDirection.UP)
    await core.drain()

    assert result.upvotes == 0
    assert len(await _kinds(core, p2.id)) == 2
    assert await _kinds(core, p3.id) == []


@pytest.mark.asyncio
async def test_downvote_does_not_notify(core, answerer, voter, sample_answer):
    await core.answers.cast_vote(sample_answer.id, voter.id, VoteDirection.DOWN)
    await core.drain()

    assert await core.notifications.unread_count(answerer.id) == 0


@pytest.mark.asyncio
async def test_retracting_a_downvote_notifies(core, answerer, voter, sample_answer):
    await core.answers.cast_vote(sample_answer.id, voter.id, VoteDirection.DOWN)
    await core.answers.cast_vote(sample_answer.id, voter.id, VoteDirection.DOWN)
    await core.drain()

    (notification,) = await core.notifications.list_for_profile(answerer.id)
    assert notification.kind == NotificationKind.VOTE_RECEIVED
    assert notification.message == "A downvote on your answer was withdrawn."


@pytest.mark.asyncio
async def test_upvote_message(core, answerer, voter, sample_answer):
    await core.answers.cast_vote(sample_answer.id, voter.id, VoteDirection.UP)
    await core.drain()

    (notification,) = await core.notifications.list_for_profile(answerer.id)
    assert notification.message == "Your answer received an upvote!"


@pytest.mark.asyncio
async def test_answering_own_question_does_not_notify(core, asker, sample_question):
    answer = await core.answers.post_answer(sample_question.id, asker.id, "Figured it out.")
    await core.answers.accept_answer(answer.id, asker.id)
    await core.drain()

    assert await core.notifications.unread_count(asker.id) == 0


@pytest.mark.asyncio
async def test_mark_read(core, asker, answerer, sample_question):
    await core.answers.post_answer(sample_question.id, answerer.id, "An answer.")
    await core.drain()
    (notification,) = await core.notifications.list_unread(asker.id)

    marked = await core.notifications.mark_read(notification.id, asker.id)
    again = await core.notifications.mark_read(notification.id, asker.id)

    assert marked.is_read and again.is_read
    assert await core.notifications.list_unread(asker.id) == []
    assert len(await core.notifications.list_for_profile(asker.id)) == 1


@pytest.mark.asyncio
async def test_only_the_addressee_may_mark_read(core, asker, answerer, sample_question):
    await core.answers.post_answer(sample_question.id, answerer.id, "An answer.")
    await core.drain()
    (notification,) = await core.notifications.list_unread(asker.id)

    with pytest.raises(ForbiddenError):
        await core.notifications.mark_read(notification.id, answerer.id)

    assert await core.notifications.unread_count(asker.id) == 1


@pytest.mark.asyncio
async def test_mark_read_unknown_notification(core, asker):
    with pytest.raises(NotFoundError):
        await core.notifications.mark_read(606, asker.id)


@pytest.mark.asyncio
async def test_mark_all_read_and_delete(core, asker, answerer, voter, sample_question):
    await core.answers.post_answer(sample_question.id, answerer.id, "First.")
    await core.answers.post_answer(sample_question.id, voter.id, "Second.")
    await core.drain()

    assert await core.notifications.unread_count(asker.id) == 2
    assert await core.notifications.mark_all_read(asker.id) == 2
    assert await core.notifications.unread_count(asker.id) == 0

    first, second = await core.notifications.list_for_profile(asker.id)
    with pytest.raises(ForbiddenError):
        await core.notifications.delete_notification(first.id, voter.id)

    await core.notifications.delete_notification(first.id, asker.id)
    assert [n.id for n in await core.notifications.list_for_profile(asker.id)] == [second.id]


@pytest.mark.asyncio
async def test_failed_notification_write_does_not_undo_the_vote(core, bus, voter, sample_answer, caplog):
    def broken_factory():
        raise RuntimeError("notification store unavailable")

    core.notifications.unregister(bus)
    broken = NotificationDispatcher(broken_factory)
    broken.register(bus)
    try:
        with caplog.at_level(logging.ERROR, logger="stackit.services.notification_dispatcher"):
            result = await core.answers.cast_vote(sample_answer.id, voter.id, VoteDirection.UP)
            await core.drain()
    finally:
        broken.unregister(bus)
        core.notifications.register(bus)

    assert result.upvotes == 1
    assert (await core.answers.get_answer(sample_answer.id)).upvotes == 1
    assert "Dropped VOTE_RECEIVED notification" in caplog.text


@pytest.mark.asyncio
async def test_close_unsubscribes_dispatcher(session_factory, bus):
    stackit_core = StackitCore(session_factory=session_factory, bus=bus)
    assert bus.subscriber_count(EventType.ANSWER_POSTED) == 1

    await stackit_core.close()

    for event_type in EventType:
        assert bus.subscriber_count(event_type) == 0


@pytest.mark.asyncio
async def test_delete_all_notifications(core, asker, answerer, voter, sample_question):
    await core.answers.post_answer(sample_question.id, answerer.id, "First.")
    await core.answers.post_answer(sample_question.id, voter.id, "Second.")
    await core.drain()
    await core.notifications.mark_all_read(asker.id)

    assert await core.notifications.delete_all_notifications(asker.id) == 2
    assert await core.notifications.list_for_profile(asker.id) == []
    assert await core.notifications.delete_all_notifications(asker.id) == 0


@pytest.mark.asyncio
async def test_delete_all_notifications_leaves_other_inboxes(core, asker, answerer, sample_question, sample_answer):
    await core.answers.post_answer(sample_question.id, answerer.id, "Another answer.")
    await core.answers.accept_answer(sample_answer.id, asker.id)
    await core.drain()

    await core.notifications.delete_all_notifications(asker.id)

    assert await core.notifications.unread_count(asker.id) == 0
    assert await _kinds(core, answerer.id) == [NotificationKind.ANSWER_ACCEPTED]
