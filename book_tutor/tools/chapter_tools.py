"""Tools giving the tutor access to the book being taught."""

from typing import Optional

from pydantic import BaseModel, Field

from ..entities import Chapter, ChapterNumber
from ..processors import Tool
from ..repositories import BaseLibrary


class ChapterQuery(BaseModel):
    """Identifies a chapter of the current book."""

    chapter_number: ChapterNumber = Field(description="The chapter number, e.g. '1.2.'")


class BookLocation(BaseModel):
    """Specifies a location in the book by chapter number and optional section title."""

    chapter_number: ChapterNumber = Field(description="The chapter number to navigate to")
    sector_title: Optional[str] = Field(default=None, description="Optional section title within the chapter")


class GetChapterTool(Tool):
    name = "GetChapterContent"
    description = (
        "Query the content of a chapter from the book. "
        "Before starting to teach a new chapter, use this tool to get the content of this chapter"
    )
    args_model = ChapterQuery

    def __init__(self, book_id: int, library: BaseLibrary):
        self.book_id = book_id
        self.library = library

    async def call(self, args: ChapterQuery) -> Chapter:
        return await self.library.get_chapter(self.book_id, args.chapter_number)


class BookJumpTool(Tool):
    name = "BookJump"
    description = (
        "Use this tool to navigate to a specific chapter or section in the book "
        "when you need the student to read particular content. It helps direct the "
        "student's attention to the relevant material."
    )
    args_model = BookLocation

    def __init__(self, book_id: int, library: BaseLibrary):
        self.book_id = book_id
        self.library = library

    async def call(self, args: BookLocation) -> str:
        chapter = await self.library.get_chapter(self.book_id, args.chapter_number)
        section = f"#{args.sector_title}" if args.sector_title else ""
        return f"Jumped to {args.chapter_number} {chapter.name}{section}"
