from __future__ import annotations


class LibraryRecord:
    """One student borrowing one book over a date range.

    ``end_date`` of ``None`` means the book has not been returned yet. When the
    record was loaded through a join, ``student_name`` and ``book_name`` carry
    the linked names; they are ``None`` if the reference is unset.
    """

    FIELDS = ("startDate", "endDate", "studentId", "bookId")

    def __init__(self, id: int | None = None, start_date: str | None = None, end_date: str | None = None,
                 student_id: int | None = None, book_id: int | None = None,
                 created_at: str | None = None, updated_at: str | None = None,
                 student_name: str | None = None, book_name: str | None = None,
                 joined: bool = False) -> None:
        self.id = id
        self.start_date = start_date
        self.end_date = end_date
        self.student_id = student_id
        self.book_id = book_id
        self.created_at = created_at
        self.updated_at = updated_at
        self.student_name = student_name
        self.book_name = book_name
        self.joined = joined

    @property
    def is_open(self) -> bool:
        return self.end_date is None

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"Loan {self.id}: student {self.student_id} / book {self.book_id}"

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "studentId": self.student_id,
            "bookId": self.book_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.joined:
            data["student"] = {"name": self.student_name} if self.student_id is not None else None
            data["book"] = {"name": self.book_name} if self.book_id is not None else None
        return data

    @staticmethod
    def from_row(row) -> "LibraryRecord":
        data = dict(row)
        joined = "student_name" in data
        return LibraryRecord(
            id=data["id"],
            start_date=data.get("startDate"),
            end_date=data.get("endDate"),
            student_id=data.get("studentId"),
            book_id=data.get("bookId"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
            student_name=data.get("student_name"),
            book_name=data.get("book_name"),
            joined=joined,
        )


class StudentBook:
    """Association row pairing a student with a book."""

    def __init__(self, id: int | None = None, student_id: int | None = None, book_id: int | None = None,
                 created_at: str | None = None, updated_at: str | None = None) -> None:
        self.id = id
        self.student_id = student_id
        self.book_id = book_id
        self.created_at = created_at
        self.updated_at = updated_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "studentId": self.student_id,
            "bookId": self.book_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @staticmethod
    def from_row(row) -> "StudentBook":
        data = dict(row)
        return StudentBook(
            id=data["id"],
            student_id=data.get("studentId"),
            book_id=data.get("bookId"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )
