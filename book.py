from __future__ import annotations


class Book:
    """Represents a single book in the library catalogue."""

    FIELDS = ("name", "author", "publication", "year")

    def __init__(self, id: int | None = None, name: str | None = None, author: str | None = None,
                 publication: str | None = None, year: int | None = None,
                 created_at: str | None = None, updated_at: str | None = None) -> None:
        self.id = id
        self.name = name
        self.author = author
        self.publication = publication
        self.year = year
        self.created_at = created_at
        self.updated_at = updated_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} by {self.author} ({self.year})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "author": self.author,
            "publication": self.publication,
            "year": self.year,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @staticmethod
    def from_row(row) -> "Book":
        data = dict(row)
        return Book(
            id=data["id"],
            name=data.get("name"),
            author=data.get("author"),
            publication=data.get("publication"),
            year=data.get("year"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )
