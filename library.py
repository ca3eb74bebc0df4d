import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from book import Book
from config import settings
from database import get_db_connection, initialize_database
from loan import LibraryRecord, StudentBook
from student import Student

logger = logging.getLogger(__name__)


class LibraryError(Exception):
    """Base class for repository failures."""


class ReferenceNotFoundError(LibraryError):
    """A studentId or bookId names a row that does not exist."""


class StorageError(LibraryError):
    """The database rejected an operation or could not be reached."""


_LOAN_SELECT = """
    SELECT library.*, students.name AS student_name, books.name AS book_name
    FROM library
    LEFT JOIN students ON students.id = library.studentId
    LEFT JOIN books ON books.id = library.bookId
"""


class Library:
    """Repository for students, books, loan records and their associations.

    Built once at startup and handed to whoever needs it. It keeps no state
    besides the database path: every operation opens its own connection and
    runs as a single transaction.
    """

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file or settings.database_file
        try:
            initialize_database(self.db_file)
        except sqlite3.Error as e:
            raise StorageError(f"Could not initialize database {self.db_file}: {e}") from e

    # ------------------------- Students ------------------------- #
    def add_student(self, name: Optional[str] = None, class_: Optional[str] = None) -> Student:
        now = self._now()
        with self._connection() as conn:
            cursor = conn.execute(
                'INSERT INTO students (name, "class", createdAt, updatedAt) VALUES (?, ?, ?, ?)',
                (name, class_, now, now),
            )
            row = conn.execute("SELECT * FROM students WHERE id = ?", (cursor.lastrowid,)).fetchone()
        return Student.from_row(row)

    def list_students(self) -> List[Student]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM students ORDER BY id").fetchall()
        return [Student.from_row(row) for row in rows]

    def find_student(self, student_id: int) -> Optional[Student]:
        row = self._find("students", student_id)
        return Student.from_row(row) if row else None

    def update_student(self, student_id: int, changes: Dict[str, Any]) -> Optional[Student]:
        """Apply ``changes`` to a student. Keys left out keep their stored value;
        keys that are present overwrite it, empty strings included."""
        row = self._update("students", Student.FIELDS, student_id, changes)
        return Student.from_row(row) if row else None

    def remove_student(self, student_id: int) -> bool:
        return self._delete("students", student_id)

    # ------------------------- Books ------------------------- #
    def add_book(self, name: Optional[str] = None, author: Optional[str] = None,
                 publication: Optional[str] = None, year: Optional[int] = None) -> Book:
        now = self._now()
        with self._connection() as conn:
            cursor = conn.execute(
                "INSERT INTO books (name, author, publication, year, createdAt, updatedAt) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (name, author, publication, year, now, now),
            )
            row = conn.execute("SELECT * FROM books WHERE id = ?", (cursor.lastrowid,)).fetchone()
        return Book.from_row(row)

    def list_books(self) -> List[Book]:
        with self._connection() as conn:
            rows = conn.execute("SELECT * FROM books ORDER BY id").fetchall()
        return [Book.from_row(row) for row in rows]

    def find_book(self, book_id: int) -> Optional[Book]:
        row = self._find("books", book_id)
        return Book.from_row(row) if row else None

    def update_book(self, book_id: int, changes: Dict[str, Any]) -> Optional[Book]:
        row = self._update("books", Book.FIELDS, book_id, changes)
        return Book.from_row(row) if row else None

    def remove_book(self, book_id: int) -> bool:
        return self._delete("books", book_id)

    # ------------------------- Loan records ------------------------- #
    def add_loan(self, start_date: Any = None, end_date: Any = None,
                 student_id: Optional[int] = None, book_id: Optional[int] = None) -> LibraryRecord:
        """Record a loan. No availability check is made: the same book can be
        on loan to several students at once."""
        now = self._now()
        with self._connection() as conn:
            self._check_references(conn, student_id, book_id)
            cursor = conn.execute(
                "INSERT INTO library (startDate, endDate, studentId, bookId, createdAt, updatedAt) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (self._timestamp(start_date), self._timestamp(end_date), student_id, book_id, now, now),
            )
            row = conn.execute("SELECT * FROM library WHERE id = ?", (cursor.lastrowid,)).fetchone()
        return LibraryRecord.from_row(row)

    def list_loans(self) -> List[LibraryRecord]:
        """All loan records with the borrowing student's and the book's names."""
        with self._connection() as conn:
            rows = conn.execute(_LOAN_SELECT + " ORDER BY library.id").fetchall()
        return [LibraryRecord.from_row(row) for row in rows]

    def find_loan(self, loan_id: int) -> Optional[LibraryRecord]:
        row = self._find("library", loan_id)
        return LibraryRecord.from_row(row) if row else None

    def update_loan(self, loan_id: int, changes: Dict[str, Any]) -> Optional[LibraryRecord]:
        changes = dict(changes)
        for key in ("startDate", "endDate"):
            if key in changes:
                changes[key] = self._timestamp(changes[key])
        row = self._update("library", LibraryRecord.FIELDS, loan_id, changes)
        return LibraryRecord.from_row(row) if row else None

    def remove_loan(self, loan_id: int) -> bool:
        return self._delete("library", loan_id)

    # ------------------------- Student/book associations ------------------------- #
    def link_book(self, student_id: int, book_id: int) -> StudentBook:
        """Associate a book with a student. Linking an existing pair again
        returns the association already stored."""
        now = self._now()
        with self._connection() as conn:
            self._check_references(conn, student_id, book_id)
            conn.execute(
                "INSERT OR IGNORE INTO student_books (studentId, bookId, createdAt, updatedAt) "
                "VALUES (?, ?, ?, ?)",
                (student_id, book_id, now, now),
            )
            row = conn.execute(
                "SELECT * FROM student_books WHERE studentId = ? AND bookId = ?",
                (student_id, book_id),
            ).fetchone()
        return StudentBook.from_row(row)

    def list_student_books(self, student_id: int) -> Optional[List[Book]]:
        """Books linked to a student, or None if the student does not exist."""
        if not self._is_row_id(student_id):
            return None
        with self._connection() as conn:
            if not conn.execute("SELECT 1 FROM students WHERE id = ?", (student_id,)).fetchone():
                return None
            rows = conn.execute(
                "SELECT books.* FROM books "
                "JOIN student_books ON student_books.bookId = books.id "
                "WHERE student_books.studentId = ? ORDER BY student_books.id",
                (student_id,),
            ).fetchall()
        return [Book.from_row(row) for row in rows]

    def unlink_book(self, student_id: int, book_id: int) -> bool:
        if not (self._is_row_id(student_id) and self._is_row_id(book_id)):
            return False
        with self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM student_books WHERE studentId = ? AND bookId = ?",
                (student_id, book_id),
            )
            return cursor.rowcount > 0

    # ------------------------- Health ------------------------- #
    def ping(self) -> bool:
        try:
            with self._connection() as conn:
                conn.execute("SELECT 1")
            return True
        except StorageError:
            return False

    # ------------------------- Internals ------------------------- #
    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction, translating sqlite errors."""
        try:
            conn = get_db_connection(self.db_file)
        except sqlite3.Error as e:
            logger.error("Cannot open database %s: %s", self.db_file, e)
            raise StorageError(str(e)) from e
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            logger.error("Database error on %s: %s", self.db_file, e)
            raise StorageError(str(e)) from e
        finally:
            conn.close()

    def _update(self, table: str, fields: tuple, record_id: int, changes: Dict[str, Any]) -> Optional[sqlite3.Row]:
        unknown = set(changes) - set(fields)
        if unknown:
            raise ValueError(f"Unknown field(s) for {table}: {', '.join(sorted(unknown))}")

        if not self._is_row_id(record_id):
            return None

        with self._connection() as conn:
            # A missing record is reported before any bad reference in the changes
            if not conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (record_id,)).fetchone():
                return None
            if table == "library":
                self._check_references(conn, changes.get("studentId"), changes.get("bookId"))
            if changes:
                assignments = ", ".join(f'"{key}" = ?' for key in changes)
                params = list(changes.values()) + [self._now(), record_id]
                cursor = conn.execute(
                    f"UPDATE {table} SET {assignments}, updatedAt = ? WHERE id = ?", params
                )
                if cursor.rowcount == 0:
                    return None
            return conn.execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,)).fetchone()

    def _find(self, table: str, record_id: int) -> Optional[sqlite3.Row]:
        if not self._is_row_id(record_id):
            return None
        with self._connection() as conn:
            return conn.execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,)).fetchone()

    def _delete(self, table: str, record_id: int) -> bool:
        if not self._is_row_id(record_id):
            return False
        with self._connection() as conn:
            cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", (record_id,))
            return cursor.rowcount > 0

    @classmethod
    def _check_references(cls, conn: sqlite3.Connection, student_id: Optional[int], book_id: Optional[int]) -> None:
        if student_id is not None and not (cls._is_row_id(student_id) and conn.execute(
            "SELECT 1 FROM students WHERE id = ?", (student_id,)
        ).fetchone()):
            raise ReferenceNotFoundError(f"Student {student_id} does not exist")
        if book_id is not None and not (cls._is_row_id(book_id) and conn.execute(
            "SELECT 1 FROM books WHERE id = ?", (book_id,)
        ).fetchone()):
            raise ReferenceNotFoundError(f"Book {book_id} does not exist")

    @staticmethod
    def _is_row_id(value: Any) -> bool:
        """SQLite rowids are signed 64-bit; anything outside cannot name a row."""
        return isinstance(value, int) and -2**63 <= value < 2**63

    @staticmethod
    def _timestamp(value: Any) -> Optional[str]:
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        return value

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat(timespec="milliseconds")
