"""Read-only book and chapter entities handed to the tutor by the library."""

from functools import total_ordering
from typing import Any, Iterable, Optional

from pydantic import BaseModel, GetCoreSchemaHandler, GetJsonSchemaHandler
from pydantic.json_schema import JsonSchemaValue
from pydantic_core import core_schema

CHAPTER_NUMBER_PATTERN = r"^(-?\d+\.)+$"


@total_ordering
class ChapterNumber:
    """A hierarchical chapter number such as ``1.2.3.``.

    Numbers starting with -1 denote suffix chapters (appendices) and sort
    after every regular chapter.
    """

    __slots__ = ("parts",)

    def __init__(self, parts: Iterable[int] = ()):
        self.parts = tuple(parts)

    @classmethod
    def parse(cls, value: str) -> "ChapterNumber":
        items = [item for item in value.strip().split(".")]
        if items and items[-1] == "":
            items.pop()
        try:
            return cls(int(item) for item in items)
        except ValueError:
            raise ValueError(f"Invalid chapter number: {value!r}") from None

    @property
    def is_suffix(self) -> bool:
        return bool(self.parts) and self.parts[0] == -1

    def __str__(self) -> str:
        return "".join(f"{part}." for part in self.parts)

    def __repr__(self) -> str:
        return f"ChapterNumber({str(self)!r})"

    def __hash__(self) -> int:
        return hash(self.parts)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChapterNumber):
            return NotImplemented
        return self.parts == other.parts

    def __lt__(self, other: "ChapterNumber") -> bool:
        if self.parts and other.parts and self.is_suffix != other.is_suffix:
            return other.is_suffix
        return self.parts < other.parts

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: GetCoreSchemaHandler) -> core_schema.CoreSchema:
        def validate(value: Any) -> "ChapterNumber":
            if isinstance(value, ChapterNumber):
                return value
            if isinstance(value, str):
                return cls.parse(value)
            raise ValueError("Chapter number must be a string like '1.2.3.'")

        return core_schema.no_info_plain_validator_function(
            validate, serialization=core_schema.plain_serializer_function_ser_schema(str)
        )

    @classmethod
    def __get_pydantic_json_schema__(
        cls, schema: core_schema.CoreSchema, handler: GetJsonSchemaHandler
    ) -> JsonSchemaValue:
        return {
            "type": "string",
            "pattern": CHAPTER_NUMBER_PATTERN,
            "description": "A chapter number in the format '1.2.3.' representing the hierarchical position in a book",
        }


class ChapterPlan(BaseModel):
    plan: str = ""
    summary: str = ""


class Chapter(BaseModel):
    """A chapter as shown to the tutor; its teaching plan and summary sit beside the content."""

    name: str
    number: ChapterNumber
    content: str
    plan: str = ""
    summary: str = ""

    @property
    def has_plan(self) -> bool:
        return bool(self.plan or self.summary)

    def with_plan(self, plan: ChapterPlan) -> "Chapter":
        return self.model_copy(update=plan.model_dump())


class BookInfo(BaseModel):
    """Book metadata used to seed the tutor's context message."""

    id: int
    title: str
    author: Optional[str] = None
    toc: str = ""
