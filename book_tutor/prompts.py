"""Prompt templates for the tutor agent."""

from .entities import BookInfo

TUTOR_INSTRUCTIONS = """You are a patient tutor teaching a student the book "{title}"{author}.
Teach one chapter at a time. Before teaching a chapter, fetch its content with the GetChapterContent tool
and follow its teaching plan. When the student should read a passage, use the BookJump tool to take them there.
Check understanding with short questions and adapt to the student's answers."""

TOC_SECTION = """
Table of contents:
{toc}"""


def build_system_prompt(book: BookInfo) -> str:
    author = f" by {book.author}" if book.author else ""
    prompt = TUTOR_INSTRUCTIONS.format(title=book.title, author=author)
    if book.toc:
        prompt += TOC_SECTION.format(toc=book.toc)
    return prompt
