"""Source-agnostic content types for quotes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class AnnotationType(str, Enum):
    """Where a quote came from."""

    HIGHLIGHT = "highlight"
    BUNDLED = "bundled"


@dataclass(frozen=True)
class Quote:
    """A validated passage from a book, ready to be shown or scheduled."""

    id: str
    content: str
    book_title: str
    book_author: str
    location: str
    created_at: datetime
    page: str | None = None
    annotation_type: AnnotationType = AnnotationType.HIGHLIGHT

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "id": self.id,
            "content": self.content,
            "book_title": self.book_title,
            "book_author": self.book_author,
            "location": self.location,
            "page": self.page,
            "created_at": self.created_at.isoformat(),
            "annotation_type": self.annotation_type.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Quote:
        """Create Quote from a dict produced by to_dict().

        Raises:
            KeyError: If a required field is missing.
            ValueError: If a field is empty or created_at is not ISO-8601.
        """
        content = str(data["content"]).strip()
        book_title = str(data["book_title"]).strip()
        book_author = str(data["book_author"]).strip()
        if not content or not book_title or not book_author:
            raise ValueError(f"Quote {data.get('id')!r} has an empty content, title or author")
        page = data.get("page")
        return cls(
            id=str(data["id"]),
            content=content,
            book_title=book_title,
            book_author=book_author,
            location=str(data.get("location") or ""),
            page=str(page) if page is not None else None,
            created_at=datetime.fromisoformat(data["created_at"]),
            annotation_type=AnnotationType(data.get("annotation_type", AnnotationType.HIGHLIGHT.value)),
        )
