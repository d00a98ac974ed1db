"""Tools available to the tutor."""

from .chapter_tools import BookJumpTool, BookLocation, ChapterQuery, GetChapterTool

__all__ = ["BookJumpTool", "BookLocation", "ChapterQuery", "GetChapterTool"]
