import logging
import sqlite3
from typing import Dict, List, Tuple

from dotenv import load_dotenv

# Make sure .env is loaded before anything reads os.environ through config.
load_dotenv()

from config import settings

logger = logging.getLogger(__name__)

# Columns each table must have after reconciliation, in creation order.
# Reconciliation is additive: missing columns are added, nothing is dropped.
TABLE_COLUMNS: Dict[str, List[Tuple[str, str]]] = {
    "students": [
        ("name", "TEXT"),
        ('"class"', "TEXT"),
        ("createdAt", "TIMESTAMP"),
        ("updatedAt", "TIMESTAMP"),
    ],
    "books": [
        ("name", "TEXT"),
        ("author", "TEXT"),
        ("publication", "TEXT"),
        ("year", "INTEGER"),
        ("createdAt", "TIMESTAMP"),
        ("updatedAt", "TIMESTAMP"),
    ],
    "student_books": [
        ("studentId", "INTEGER REFERENCES students(id) ON DELETE CASCADE"),
        ("bookId", "INTEGER REFERENCES books(id) ON DELETE CASCADE"),
        ("createdAt", "TIMESTAMP"),
        ("updatedAt", "TIMESTAMP"),
    ],
    "library": [
        ("startDate", "TIMESTAMP"),
        ("endDate", "TIMESTAMP"),
        ("studentId", "INTEGER REFERENCES students(id) ON DELETE SET NULL"),
        ("bookId", "INTEGER REFERENCES books(id) ON DELETE SET NULL"),
        ("createdAt", "TIMESTAMP"),
        ("updatedAt", "TIMESTAMP"),
    ],
}


def get_db_connection(db_file: str | None = None) -> sqlite3.Connection:
    """Open a connection to the SQLite database with foreign keys enforced."""
    conn = sqlite3.connect(db_file or settings.database_file, timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def create_tables(db_file: str | None = None) -> None:
    """Creates the tables if they don't exist and adds any missing columns."""
    conn = get_db_connection(db_file)
    try:
        cursor = conn.cursor()
        for table, columns in TABLE_COLUMNS.items():
            column_sql = ",\n".join(f"    {name} {ddl}" for name, ddl in columns)
            extra = ""
            if table == "student_books":
                extra = ",\n    UNIQUE (studentId, bookId)"
            cursor.execute(
                f"CREATE TABLE IF NOT EXISTS {table} (\n"
                f"    id INTEGER PRIMARY KEY AUTOINCREMENT,\n{column_sql}{extra}\n)"
            )

            # Tables created by an older schema may miss newer columns
            cursor.execute(f"PRAGMA table_info({table})")
            existing = {row[1] for row in cursor.fetchall()}
            for name, ddl in columns:
                if name.strip('"') not in existing:
                    logger.info("Adding column %s.%s", table, name)
                    cursor.execute(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}")

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_library_student ON library(studentId)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_library_book ON library(bookId)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_student_books_student ON student_books(studentId)")
        conn.commit()
    finally:
        conn.close()


def initialize_database(db_file: str | None = None) -> None:
    """Initializes the database, reconciling the schema with the record definitions."""
    create_tables(db_file)
    logger.debug("Database schema ready at %s", db_file or settings.database_file)
