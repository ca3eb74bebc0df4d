from __future__ import annotations


class Student:
    """A library member. ``class_`` holds the section or grade label."""

    FIELDS = ("name", "class")

    def __init__(self, id: int | None = None, name: str | None = None, class_: str | None = None,
                 created_at: str | None = None, updated_at: str | None = None) -> None:
        self.id = id
        self.name = name
        self.class_ = class_
        self.created_at = created_at
        self.updated_at = updated_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} ({self.class_})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "class": self.class_,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @staticmethod
    def from_row(row) -> "Student":
        data = dict(row)
        return Student(
            id=data["id"],
            name=data.get("name"),
            class_=data.get("class"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )
