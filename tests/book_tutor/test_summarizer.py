import pytest
from fakes import CHAPTERS, FakeProvider

from book_tutor.entities import ChapterPlan
from book_tutor.services import Summarizer
from book_tutor.services.summarizer import CHAPTER_PLAN_PROMPT


@pytest.mark.asyncio
async def test_summarize_sends_word_limit_and_content() -> None:
    provider = FakeProvider(completion="Short summary.\n")
    summarizer = Summarizer(provider, "test-model")

    summary = await summarizer.summarize("Chapter text", 50)

    assert summary == "Short summary."
    (request,) = provider.completions
    system, user = request["messages"]
    assert system["role"] == "system"
    assert system["content"].startswith("Summarize the following content.")
    assert system["content"].endswith("Answer in no more than 50 words.")
    assert user == {"role": "user", "content": "Chapter text"}


@pytest.mark.asyncio
async def test_chapter_plan_requests_plan_then_summary() -> None:
    provider = FakeProvider(completion="text")
    summarizer = Summarizer(provider, "test-model")

    plan = await summarizer.chapter_plan("Tenses", "Tenses express time.")

    assert plan == ChapterPlan(plan="text", summary="text")
    plan_request, summary_request = provider.completions
    assert plan_request["messages"][0]["content"].startswith(CHAPTER_PLAN_PROMPT)
    assert "1000 words" in plan_request["messages"][0]["content"]
    assert "100 words" in summary_request["messages"][0]["content"]


@pytest.mark.asyncio
async def test_plan_chapters_fills_only_missing_plans() -> None:
    provider = FakeProvider(completion="generated")
    summarizer = Summarizer(provider, "test-model")

    verbs, tenses, appendix = await summarizer.plan_chapters(CHAPTERS)

    assert (verbs.plan, verbs.summary) == ("generated", "generated")
    assert (tenses.plan, tenses.summary) == ("Teach present, past and future.", "Verb tenses.")
    assert appendix.content == "Irregular verbs."
    assert appendix.has_plan
    # Two completions per planned chapter; the already planned one is left alone
    assert len(provider.completions) == 4
    assert not CHAPTERS[0].has_plan
