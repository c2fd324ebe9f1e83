"""Stored record shapes for session data.

Records are JSON with camelCase keys (``pageCount``, ``currentPage``) so the
blobs match what the browser client exchanges. Domain dataclasses go in with
``model_validate`` (``from_attributes``) and come back out with ``to_entity``.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from atmosphera.domain.entities import Book, Price, ReadingProgress, TrainingSignal


class CamelRecord(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    def dump_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class PriceRecord(CamelRecord):
    amount: float
    currency_code: str


class BookRecord(CamelRecord):
    title: str
    author: str
    id: Optional[str] = None
    isbn: Optional[str] = None
    genre: str = "General"
    description: str = ""
    reasoning: str = ""
    mood_color: str = ""
    excerpt: str = ""
    ebook_url: Optional[str] = None
    movie_pairing: Optional[str] = None
    music_pairing: Optional[str] = None
    food_pairing: Optional[str] = None
    language: Optional[str] = None
    atmospheric_role: Optional[str] = None
    cognitive_effort: Optional[str] = None
    section_fit: Optional[str] = None
    moment_fit: Optional[str] = None
    cover_url: Optional[str] = None
    publisher: Optional[str] = None
    published_date: Optional[str] = None
    page_count: Optional[int] = None
    average_rating: Optional[float] = None
    ratings_count: Optional[int] = None
    saleability: Optional[str] = None
    price: Optional[PriceRecord] = None
    buy_link: Optional[str] = None
    access_view_status: Optional[str] = None
    pdf_available: Optional[bool] = None
    epub_available: Optional[bool] = None

    def to_entity(self) -> Book:
        price = Price(**self.price.model_dump()) if self.price else None
        return Book(**self.model_dump(exclude={"price"}), price=price)


class ProgressRecord(CamelRecord):
    book_title: str
    current_page: int = 0
    total_pages: int = 300
    percentage: int = 0
    last_updated: Optional[str] = None

    def to_entity(self) -> ReadingProgress:
        return ReadingProgress(**self.model_dump(exclude_none=True))


class TrainingSignalRecord(CamelRecord):
    id: str
    book_title: str
    book_author: str = "User Input"
    feedback_type: Literal["positive", "negative"] = "positive"
    context_note: str
    atmospheric_weight: int = Field(50, ge=0, le=100)
    timestamp: str

    def to_entity(self) -> TrainingSignal:
        return TrainingSignal(**self.model_dump())


BookList = TypeAdapter(list[BookRecord])
TrainingSignalList = TypeAdapter(list[TrainingSignalRecord])


def dump_list(adapter: TypeAdapter, records: list) -> str:
    return adapter.dump_json(records, by_alias=True, exclude_none=True).decode("utf-8")
