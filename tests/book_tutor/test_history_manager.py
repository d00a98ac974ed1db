import pytest

from book_tutor.entities import ConversationIdentity, Message, MessageRecord, Role, ToolInvocation
from book_tutor.errors import InconsistentHistoryError, PersistenceError
from book_tutor.processors import HistoryManager, approximate_tokens
from book_tutor.repositories import InMemoryConversationRepository, SQLiteConversationRepository


def fixed_size(message: Message) -> int:
    return 10


def call(id: str, chapter: str = "1.") -> ToolInvocation:
    return ToolInvocation(
        id=id,
        name="GetChapterContent",
        arguments_text=f'{{"chapter_number": "{chapter}"}}',
        arguments={"chapter_number": chapter},
    )


def dialogue(turns: int) -> list[Message]:
    messages = []
    for i in range(turns):
        messages.append(Message.user(f"question {i}"))
        messages.append(Message.assistant(f"answer {i}"))
    return messages


def tool_turn() -> list[Message]:
    return [
        Message.user("Teach me chapter 1"),
        Message.assistant(tool_calls=[call("call_a"), call("call_b", "1.1.")]),
        Message.tool_result("call_a", "Verbs express actions."),
        Message.tool_result("call_b", "Tenses express time."),
        Message.assistant("Let's start with verbs."),
    ]


async def store(repository, identity: ConversationIdentity, messages: list[Message]) -> None:
    records = [MessageRecord.from_message(message, sequence) for sequence, message in enumerate(messages)]
    await repository.append_messages(identity, records)


@pytest.mark.unit
def test_approximate_tokens_is_deterministic_and_monotonic() -> None:
    assert approximate_tokens(Message.user("")) == 12
    assert approximate_tokens(Message.user("hello")) == approximate_tokens(Message.user("hello"))
    assert approximate_tokens(Message.user("a" * 400)) > approximate_tokens(Message.user("a" * 40))


@pytest.mark.asyncio
async def test_load_keeps_longest_suffix_within_budget(identity, repository) -> None:
    stored = dialogue(5)
    await store(repository, identity, stored)

    history = await HistoryManager.load(identity, repository, budget=35, estimator=fixed_size)

    assert history.history() == tuple(stored[-3:])
    assert history.token_count == 30
    assert history.token_count <= history.budget


@pytest.mark.asyncio
async def test_load_pins_system_prompt_first(identity, repository) -> None:
    stored = dialogue(5)
    await store(repository, identity, stored)

    history = await HistoryManager.load(
        identity, repository, budget=35, system_prompt="You are a tutor", estimator=fixed_size
    )

    messages = history.history()
    assert messages[0] == Message.system("You are a tutor")
    assert messages[1:] == tuple(stored[-2:])
    assert history.messages()[0] == {"role": "system", "content": "You are a tutor"}


@pytest.mark.asyncio
async def test_load_never_starts_with_tool_result(identity, repository) -> None:
    await store(repository, identity, tool_turn())

    history = await HistoryManager.load(identity, repository, budget=30, estimator=fixed_size)

    assert [message.role for message in history.history()] == [Role.ASSISTANT]
    assert history.history()[0].content == "Let's start with verbs."


@pytest.mark.asyncio
async def test_load_drops_interrupted_tool_turns(identity, repository) -> None:
    stored = [
        Message.user("Teach me chapter 1"),
        Message.assistant(tool_calls=[call("call_a"), call("call_b")]),
        Message.tool_result("call_a", "Verbs express actions."),
        Message.user("Are you there?"),
        Message.assistant("Yes."),
        Message.user("Jump to the appendix"),
        Message.assistant(tool_calls=[call("call_c", "-1.")]),
    ]
    await store(repository, identity, stored)

    history = await HistoryManager.load(identity, repository, budget=10_000)

    assert history.history() == (stored[0], stored[3], stored[4], stored[5])


@pytest.mark.asyncio
async def test_load_continues_sequence_numbers(identity, repository) -> None:
    await store(repository, identity, dialogue(2))
    history = await HistoryManager.load(identity, repository, budget=10_000)

    await history.append(Message.user("next"))

    records = await repository.load_messages(identity)
    assert [record.sequence for record in records] == [0, 1, 2, 3, 4]
    assert records[-1].content == "next"


@pytest.mark.asyncio
async def test_tool_result_without_pending_call_is_rejected(history) -> None:
    await history.append(Message.user("hi"))

    with pytest.raises(InconsistentHistoryError) as exc_info:
        await history.append(Message.tool_result("call_x", "orphan"))

    assert exc_info.value.tool_call_id == "call_x"
    assert len(history) == 1
    assert history.unflushed_count == 0


@pytest.mark.asyncio
async def test_user_message_while_results_pending_is_rejected(history) -> None:
    await history.append_many(tool_turn()[:3])

    with pytest.raises(InconsistentHistoryError):
        await history.append(Message.user("hello?"))

    assert len(history) == 3


@pytest.mark.asyncio
async def test_rejected_batch_leaves_history_untouched(history, repository, identity) -> None:
    await history.append_many(tool_turn()[:2])

    with pytest.raises(InconsistentHistoryError):
        await history.append_many(
            [Message.tool_result("call_a", "ok"), Message.tool_result("call_zzz", "wrong id")]
        )

    assert len(history) == 2
    assert len(await repository.load_messages(identity)) == 2


@pytest.mark.asyncio
async def test_duplicate_and_system_messages_are_rejected(history) -> None:
    await history.append_many(tool_turn()[:3])
    with pytest.raises(InconsistentHistoryError):
        await history.append(Message.tool_result("call_a", "again"))

    with pytest.raises(InconsistentHistoryError):
        await history.append(Message.system("new rules"))


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", ["memory", "sqlite"])
async def test_persisted_history_round_trips(identity, backend: str) -> None:
    if backend == "memory":
        repository = InMemoryConversationRepository()
    else:
        repository = SQLiteConversationRepository(":memory:")
    messages = tool_turn() + [
        Message.user("Tell me something rude"),
        Message.assistant(refusal="I can't help with that."),
    ]

    history = HistoryManager(identity, repository, budget=10_000)
    await history.append_many(messages)
    reloaded = await HistoryManager.load(identity, repository, budget=10_000)

    assert reloaded.history() == tuple(messages)
    assert reloaded.token_count == history.token_count
    await repository.close()


@pytest.mark.asyncio
async def test_auto_save_threshold_batches_flushes(identity, repository) -> None:
    history = HistoryManager(identity, repository, budget=10_000, auto_save_threshold=3)
    messages = dialogue(3)

    await history.append(messages[0])
    await history.append(messages[1])
    assert repository.append_calls == 0

    await history.append(messages[2])
    assert repository.append_calls == 1
    assert len(await repository.load_messages(identity)) == 3

    await history.append(messages[3])
    assert history.unflushed_count == 1
    assert len(await repository.load_messages(identity)) == 3

    await history.append_many(messages[4:])
    assert repository.append_calls == 2
    assert len(await repository.load_messages(identity)) == 6


@pytest.mark.asyncio
async def test_persistence_failure_keeps_messages_for_retry(identity, failing_repository) -> None:
    history = HistoryManager(identity, failing_repository, budget=10_000)

    with pytest.raises(PersistenceError) as exc_info:
        await history.append(Message.user("hi"))

    assert exc_info.value.pending == 1
    assert len(history) == 1
    assert history.unflushed_count == 1

    failing_repository.fail = False
    await history.append(Message.assistant("Hello!"))

    assert history.unflushed_count == 0
    stored = await failing_repository.load_messages(identity)
    assert [record.content for record in stored] == ["hi", "Hello!"]


@pytest.mark.asyncio
async def test_flush_after_failure_persists_queue(identity, failing_repository) -> None:
    history = HistoryManager(identity, failing_repository, budget=10_000, auto_save_threshold=1)
    with pytest.raises(PersistenceError):
        await history.append(Message.user("hi"))

    failing_repository.fail = False
    await history.flush()

    assert len(await failing_repository.load_messages(identity)) == 1


@pytest.mark.asyncio
async def test_eviction_removes_tool_results_with_their_call(identity, repository) -> None:
    history = HistoryManager(
        identity, repository, budget=30, estimator=fixed_size, system_message=Message.system("ctx")
    )
    await history.append_many(tool_turn())
    assert history.token_count == 60

    evicted = await history.enforce_budget()

    assert evicted == 4
    assert [message.role for message in history.history()] == [Role.SYSTEM, Role.ASSISTANT]
    assert history.token_count == 20


@pytest.mark.asyncio
async def test_enforce_budget_makes_room_for_reserve(identity, repository) -> None:
    history = HistoryManager(identity, repository, budget=40, estimator=fixed_size)
    await history.append_many(dialogue(2))

    assert await history.enforce_budget() == 0
    assert await history.enforce_budget(reserve=10) == 1
    assert history.history()[0].content == "answer 0"
    assert history.token_count == 30


@pytest.mark.asyncio
async def test_pinned_system_message_is_never_evicted(identity, repository) -> None:
    history = HistoryManager(
        identity, repository, budget=5, estimator=fixed_size, system_message=Message.system("ctx")
    )
    await history.append(Message.user("hi"))

    await history.enforce_budget()

    assert history.history() == (Message.system("ctx"),)
    stored = await repository.load_messages(identity)
    assert [record.role for record in stored] == [Role.USER]


@pytest.mark.unit
def test_budget_must_be_positive(identity, repository) -> None:
    with pytest.raises(ValueError):
        HistoryManager(identity, repository, budget=0)
