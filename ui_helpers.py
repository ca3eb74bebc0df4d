import os
import json
from typing import Any, Dict, List, Tuple
from rich.console import Console
from rich.table import Table

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()

# Columns shown per listing: (JSON key, heading)
COLUMNS: Dict[str, List[Tuple[str, str]]] = {
    "students": [("id", "ID"), ("name", "Name"), ("class", "Class")],
    "books": [("id", "ID"), ("name", "Name"), ("author", "Author"), ("publication", "Publication"), ("year", "Year")],
    "library": [("id", "ID"), ("student", "Student"), ("book", "Book"), ("startDate", "Start"), ("endDate", "End")],
}

EMPTY_MESSAGES = {
    "students": "No students found.",
    "books": "No books in library.",
    "library": "No library records found.",
}


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _cell(record: Dict[str, Any], key: str) -> str:
    value = record.get(key)
    if isinstance(value, dict):
        # embedded student/book reference
        value = value.get("name")
    elif value is None and key in ("student", "book"):
        ref = record.get(f"{key}Id")
        value = f"#{ref}" if ref is not None else None
    return "" if value is None else str(value)


def print_records(kind: str, records: List[Dict[str, Any]]) -> None:
    """Print a listing in the current output mode.
    - plain: one 'id - field | field' line per record
    - json: the records as a JSON array
    - rich: Rich table
    """
    mode = get_output_mode()
    columns = COLUMNS[kind]

    if not records:
        print(EMPTY_MESSAGES[kind])
        return

    if mode == "json":
        print(json.dumps(records, ensure_ascii=False))
    elif mode == "rich":
        table = Table(title=kind.capitalize(), show_lines=True, header_style="bold cyan")
        for _, heading in columns:
            table.add_column(heading, style="magenta" if heading == "ID" else "white", no_wrap=heading == "ID")
        for record in records:
            table.add_row(*(_cell(record, key) for key, _ in columns))
        _console.print(table)
    else:
        for record in records:
            rest = " | ".join(_cell(record, key) for key, _ in columns[1:])
            print(f"{_cell(record, 'id')} - {rest}")


def print_record(kind: str, record: Dict[str, Any]) -> None:
    """Print a single record, labelled field per line."""
    if get_output_mode() == "json":
        print(json.dumps(record, ensure_ascii=False))
        return
    for key, heading in COLUMNS[kind]:
        print(f"{heading}: {_cell(record, key)}")
