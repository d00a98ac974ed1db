"""One-shot summaries and chapter plans produced by the completion provider."""

from typing import Iterable, Optional

from ..entities import Chapter, ChapterPlan, ICompletionProvider
from ..structured_logging import get_logger

logger = get_logger("SUMMARIZER")

CHAPTER_PLAN_PROMPT = """Generate a teaching plan for the following chapter.
Example:
```
# Chapter Plan for Chapter 3: Verb Tenses

## Chapter Objectives
- Understand how verb tenses express time in English.
- Master the use of simple present, past, and future tenses.

## Teaching Outline
1. **Introduction to Verb Tenses**:
   - Explain what tenses are and why they matter.
2. **Simple Tenses**:
   - **Present Simple**: Teach its uses (habits, facts), structure, and examples.
   - **Past Simple**: Cover regular/irregular verbs and common uses.

## Activities and Methods
- **Tailored Examples**: Use sentences relevant to the student's interests.
- **Practice Exercises**: Fill-in-the-blank and sentence rewriting tasks.
- **End-of-Chapter Quiz**: Test the student's grasp of the chapter's concepts.

## Next Steps
- Assign homework to reinforce the chapter.
- Link the chapter to the next one.
```"""

PLAN_MAX_WORDS = 1000
SUMMARY_MAX_WORDS = 100


class Summarizer:
    """Delegates summarization to a single non-streaming completion."""

    def __init__(self, provider: ICompletionProvider, model: str):
        self.provider = provider
        self.model = model

    async def summarize(self, content: str, max_words: int, prompt: Optional[str] = None) -> str:
        """Summarize ``content`` in at most ``max_words`` words.

        Args:
            content: Text to summarize
            max_words: Word limit given to the model
            prompt: Extra instructions replacing the default summary request
        """
        instructions = prompt or "Summarize the following content."
        system = f"{instructions}\nAnswer in no more than {max_words} words."
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": content},
        ]
        logger.debug("Requesting summary", model=self.model, content_length=len(content), max_words=max_words)
        return (await self.provider.complete(self.model, messages)).strip()

    async def chapter_plan(self, name: str, content: str) -> ChapterPlan:
        logger.info("Generating chapter plan", chapter=name)
        plan = await self.summarize(content, PLAN_MAX_WORDS, CHAPTER_PLAN_PROMPT)
        summary = await self.summarize(content, SUMMARY_MAX_WORDS)
        return ChapterPlan(plan=plan, summary=summary)

    async def plan_chapters(self, chapters: Iterable[Chapter]) -> list[Chapter]:
        """Fill in the plan and summary of every chapter that has neither."""
        planned = []
        for chapter in chapters:
            if not chapter.has_plan:
                chapter = chapter.with_plan(await self.chapter_plan(chapter.name, chapter.content))
            planned.append(chapter)
        return planned
