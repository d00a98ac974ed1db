import asyncio
import json
from typing import Any

import pytest
from fakes import BOOK, FakeProvider, text, tool_delta
from fastapi.testclient import TestClient

from book_tutor.entities import BookInfo, Chapter, ChapterNumber, ConversationIdentity
from book_tutor.repositories import InMemoryConversationRepository
from book_tutor.server.main import TutorServiceAPI


@pytest.fixture()
def api(test_service_config, library):
    provider = FakeProvider()
    repository = InMemoryConversationRepository()
    api = TutorServiceAPI(
        service_config=test_service_config, provider=provider, repository=repository, library=library
    )
    return api, provider


def parse_sse(body: str) -> list[dict[str, Any]]:
    events = []
    for block in body.replace("\r\n", "\n").split("\n\n"):
        fields = dict(line.split(": ", 1) for line in block.splitlines() if ": " in line)
        if "event" in fields:
            events.append(fields)
    return events


def test_root_endpoint(api) -> None:
    api_obj, _ = api
    with TestClient(api_obj.app) as client:
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Book tutor is running"}


def test_chat_endpoint_returns_collected_events(api) -> None:
    api_obj, provider = api
    provider.turns = [[text("Hel"), text("lo!")]]

    with TestClient(api_obj.app) as client:
        resp = client.post("/chat", json={"student_id": 7, "book_id": BOOK.id, "message": "Hi"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["content"] == "Hello!"
    assert data["events"] == [{"type": "content", "text": "Hel"}, {"type": "content", "text": "lo!"}]
    system = provider.requests[0]["messages"][0]
    assert system["role"] == "system"
    assert "English Grammar" in system["content"]


def test_chat_endpoint_reuses_conversation(api) -> None:
    api_obj, provider = api
    provider.turns = [[text("one")], [text("two")]]

    with TestClient(api_obj.app) as client:
        client.post("/chat", json={"student_id": 7, "book_id": BOOK.id, "message": "first"})
        client.post("/chat", json={"student_id": 7, "book_id": BOOK.id, "message": "second"})

        assert len(api_obj.sessions) == 1
    contents = [message.get("content") for message in provider.requests[1]["messages"][1:]]
    assert contents == ["first", "one", "second"]


def test_chat_endpoint_transport_error(api) -> None:
    api_obj, provider = api
    provider.turns = [ConnectionError("connection reset")]

    with TestClient(api_obj.app) as client:
        resp = client.post("/chat", json={"student_id": 7, "book_id": BOOK.id, "message": "Hi"})

    assert resp.status_code == 502
    assert "correlation_id" in resp.json()["detail"]


def test_chat_endpoint_unknown_book(api) -> None:
    api_obj, _ = api

    with TestClient(api_obj.app) as client:
        resp = client.post("/chat", json={"student_id": 7, "book_id": 404, "message": "Hi"})

    assert resp.status_code == 404
    assert "Book not found: 404" in resp.json()["detail"]


def test_chat_endpoint_rejects_empty_message(api) -> None:
    api_obj, _ = api

    with TestClient(api_obj.app) as client:
        resp = client.post("/chat", json={"student_id": 7, "book_id": BOOK.id, "message": ""})

    assert resp.status_code == 422


def test_chat_endpoint_streams_server_sent_events(api) -> None:
    api_obj, provider = api
    provider.turns = [
        [text("Let me jump. "), tool_delta(0, id="call_1", name="BookJump", arguments='{"chapter_number": "1."}')],
        [text("There you are.")],
    ]

    with TestClient(api_obj.app) as client:
        resp = client.post(
            "/chat",
            json={"student_id": 7, "book_id": BOOK.id, "message": "Show me verbs"},
            headers={"Accept": "text/event-stream"},
        )

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["x-correlation-id"]
    events = parse_sse(resp.text)
    assert [event["event"] for event in events] == ["content", "tool_call", "tool_result", "content", "metadata"]
    assert json.loads(events[2]["data"])["result"]["content"] == "Jumped to 1. Verbs"
    assert json.loads(events[-1]["data"])["event_count"] == 4


def test_lifespan_flushes_sessions(api) -> None:
    api_obj, provider = api
    provider.turns = [[text("Hello!")]]
    identity = ConversationIdentity(student_id=7, book_id=BOOK.id)

    with TestClient(api_obj.app) as client:
        client.post("/chat", json={"student_id": 7, "book_id": BOOK.id, "message": "Hi"})
        assert len(api_obj.sessions) == 1

    assert len(api_obj.sessions) == 0
    stored = asyncio.run(api_obj.repository.load_messages(identity))
    assert [record.content for record in stored] == ["Hi", "Hello!"]


def test_register_book_generates_missing_chapter_plans(api) -> None:
    api_obj, provider = api
    provider.completion = "Plan it."
    book = BookInfo(id=2, title="Spanish Basics")
    chapters = [
        Chapter(name="Greetings", number=ChapterNumber.parse("1."), content="Hola."),
        Chapter(name="Numbers", number=ChapterNumber.parse("2."), content="Uno.", plan="Count.", summary="Numbers."),
    ]

    asyncio.run(api_obj.register_book(book, chapters))

    greetings = asyncio.run(api_obj.library.get_chapter(2, ChapterNumber.parse("1.")))
    numbers = asyncio.run(api_obj.library.get_chapter(2, ChapterNumber.parse("2.")))
    assert (greetings.plan, greetings.summary) == ("Plan it.", "Plan it.")
    assert numbers.plan == "Count."
    assert provider.completions[0]["model"] == "test-model"
    assert len(provider.completions) == 2
