"""Embedded shelf served when the catalog is unreachable or empty."""

import random
from typing import Optional

from atmosphera.domain.entities import Book
from atmosphera.infrastructure.catalog.palette import mood_color_for

_FALLBACK = [
    ("Atomic Habits", "James Clear", "Self-Help", "9780735211292",
     "Tiny changes, remarkable results: a practical system for building good habits and breaking bad ones."),
    ("The Midnight Library", "Matt Haig", "Fiction", "9780525559474",
     "Between life and death there is a library of every life you could have lived."),
    ("Project Hail Mary", "Andy Weir", "Science Fiction", "9780593135204",
     "A lone astronaut wakes with no memory and the fate of Earth on his shoulders."),
    ("Where the Crawdads Sing", "Delia Owens", "Mystery", "9780735219090",
     "A marsh girl, a murder, and the wild North Carolina coast."),
    ("The Seven Husbands of Evelyn Hugo", "Taylor Jenkins Reid", "Historical Fiction", "9781501161933",
     "An aging Hollywood icon finally tells the truth about her glamorous, scandalous life."),
    ("Circe", "Madeline Miller", "Fantasy", "9780316556347",
     "The exiled witch of Aiaia finds her own power among gods and mortals."),
    ("Sapiens", "Yuval Noah Harari", "History", "9780062316097",
     "A brief history of humankind, from foragers to the age of algorithms."),
    ("The Silent Patient", "Alex Michaelides", "Thriller", "9781250301697",
     "A woman shoots her husband and never speaks again."),
]


def fallback_books(rng: Optional[random.Random] = None) -> list[Book]:
    """Fresh, shuffled copies of the embedded shelf."""
    books = [
        Book(
            title=title,
            author=author,
            genre=genre,
            isbn=isbn,
            description=description,
            excerpt=description[:100],
            mood_color=mood_color_for(title),
            reasoning="A perennial reader favourite.",
        ).ensure_id()
        for title, author, genre, isbn, description in _FALLBACK
    ]
    (rng or random).shuffle(books)
    return books
