import asyncio
import uuid

import pytest
from sqlalchemy import func, select

from docassist.models.conversation import Message, MessageRole
from docassist.services.conversations import ConversationNotFoundError, derive_title


@pytest.mark.parametrize(
    "message,title",
    [
        ("  What is   our\nrefund policy? ", "What is our refund policy?"),
        ("", "New conversation"),
        (" \n\t ", "New conversation"),
        ("x" * 250, "x" * 100),
    ],
)
def test_derive_title(message, title):
    assert derive_title(message) == title


@pytest.mark.asyncio
async def test_first_exchange_creates_conversation(conversations, tenant_a, user_id):
    exchange = await conversations.record_exchange(
        tenant_id=tenant_a,
        user_id=user_id,
        user_message="Where is the office?",
        assistant_message="In Berlin.",
    )

    assert exchange.created
    stored = await conversations.get(exchange.conversation.id, tenant_a, with_messages=True)
    assert stored.title == "Where is the office?"
    assert [(m.position, m.role, m.content) for m in stored.messages] == [
        (0, MessageRole.USER, "Where is the office?"),
        (1, MessageRole.ASSISTANT, "In Berlin."),
    ]


@pytest.mark.asyncio
async def test_follow_up_appends_in_order(conversations, tenant_a, user_id):
    first = await conversations.record_exchange(tenant_a, user_id, "q1", "a1")
    second = await conversations.record_exchange(
        tenant_a, user_id, "q2", "a2", conversation_id=first.conversation.id
    )

    assert not second.created
    stored = await conversations.get(first.conversation.id, tenant_a, with_messages=True)
    assert [m.content for m in stored.messages] == ["q1", "a1", "q2", "a2"]
    assert [m.position for m in stored.messages] == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_other_tenant_cannot_read_or_append(conversations, tenant_a, tenant_b, user_id):
    exchange = await conversations.record_exchange(tenant_a, user_id, "q", "a")
    conversation_id = exchange.conversation.id

    assert await conversations.get(conversation_id, tenant_b) is None
    assert await conversations.list(tenant_b) == []
    with pytest.raises(ConversationNotFoundError):
        await conversations.record_exchange(
            tenant_b, user_id, "q", "a", conversation_id=conversation_id
        )
    with pytest.raises(ConversationNotFoundError):
        await conversations.delete(conversation_id, tenant_b)


@pytest.mark.asyncio
async def test_list_filters_by_user_and_project(conversations, tenant_a, user_id):
    project_id = uuid.uuid4()
    other_user = uuid.uuid4()
    in_project = await conversations.record_exchange(
        tenant_a, user_id, "q", "a", project_id=project_id
    )
    await conversations.record_exchange(tenant_a, user_id, "q", "a")
    await conversations.record_exchange(tenant_a, other_user, "q", "a")

    assert len(await conversations.list(tenant_a)) == 3
    assert len(await conversations.list(tenant_a, user_id=user_id)) == 2
    scoped = await conversations.list(tenant_a, project_id=project_id)
    assert [c.id for c in scoped] == [in_project.conversation.id]


@pytest.mark.asyncio
async def test_delete_removes_messages(conversations, session_factory, tenant_a, user_id):
    exchange = await conversations.record_exchange(tenant_a, user_id, "q", "a")

    deleted = await conversations.delete(exchange.conversation.id, tenant_a)

    assert deleted.id == exchange.conversation.id
    assert await conversations.get(exchange.conversation.id, tenant_a) is None
    async with session_factory() as session:
        remaining = await session.scalar(select(func.count()).select_from(Message))
    assert remaining == 0


@pytest.mark.asyncio
async def test_concurrent_turns_on_one_conversation_all_persist(
    conversations, tenant_a, user_id
):
    first = await conversations.record_exchange(tenant_a, user_id, "q0", "a0")
    conversation_id = first.conversation.id

    results = await asyncio.gather(
        *(
            conversations.record_exchange(
                tenant_a, user_id, f"q{i}", f"a{i}", conversation_id=conversation_id
            )
            for i in range(1, 4)
        )
    )

    assert [r.created for r in results] == [False, False, False]
    stored = await conversations.get(conversation_id, tenant_a, with_messages=True)
    assert [m.position for m in stored.messages] == list(range(8))
    # Each pair stays adjacent: user at an even position, its answer right after.
    pairs = [
        (stored.messages[i].content, stored.messages[i + 1].content) for i in range(0, 8, 2)
    ]
    assert sorted(pairs) == [("q0", "a0"), ("q1", "a1"), ("q2", "a2"), ("q3", "a3")]
