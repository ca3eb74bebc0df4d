"""Client-side forms for entering and editing library records.

A form keeps its own editable state, talks to the API through an
``httpx.Client`` (``fastapi.testclient.TestClient`` works too) and moves to
another view through the ``navigate`` callback it was given.

Both form kinds report failures the same way: ``error_message`` is set, the
failure is logged and the input is left as it was.
"""

import logging
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)

Navigate = Callable[[str], None]


class FormState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    EDITING = "editing"
    SAVING = "saving"
    NAVIGATED = "navigated"
    ERROR = "error"


def describe_error(exc: httpx.HTTPError) -> str:
    """Short message for a failed request, preferring the API's ``error`` field."""
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            body = exc.response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error"):
            return str(body["error"])
        return f"Request failed with status code {exc.response.status_code}"
    return str(exc) or exc.__class__.__name__


def _optional_int(value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    # Let the API reject anything that is not a number
    return value


def _optional_text(value: Any) -> Any:
    return None if value == "" else value


class _BaseForm:
    resource: str = ""
    label: str = ""
    listing_route: str = "/"
    fields: Tuple[str, ...] = ()
    field_labels: Mapping[str, str] = MappingProxyType({})

    def __init__(self, client: httpx.Client, navigate: Navigate) -> None:
        self.client = client
        self.navigate = navigate
        self.success_message = ""
        self.error_message = ""

    def payload(self) -> Dict[str, Any]:
        return dict(self.values)

    def _fail(self, action: str, exc: httpx.HTTPError) -> None:
        self.error_message = f"Error {action} {self.label}: {describe_error(exc)}"
        self.success_message = ""
        self.state = FormState.ERROR
        logger.error("%s %s failed: %s", action.capitalize(), self.label, exc)


class CreateForm(_BaseForm):
    """Collects a new record and POSTs it."""

    def __init__(self, client: httpx.Client, navigate: Navigate) -> None:
        super().__init__(client, navigate)
        self.values: Dict[str, Any] = {name: "" for name in self.fields}
        self.state = FormState.IDLE

    def set(self, field: str, value: Any) -> None:
        if field not in self.values:
            raise KeyError(f"{self.label} form has no field {field!r}")
        self.values[field] = value
        self.state = FormState.EDITING

    def submit(self) -> bool:
        self.state = FormState.SAVING
        try:
            response = self.client.post(f"/{self.resource}", json=self.payload())
            response.raise_for_status()
        except httpx.HTTPError as e:
            self._fail("creating", e)
            return False

        self.success_message = f"{self.label.capitalize()} created successfully!"
        self.error_message = ""
        self.state = FormState.NAVIGATED
        self.navigate(self.listing_route)
        return True

    def cancel(self) -> None:
        self.values = {name: "" for name in self.fields}
        self.success_message = ""
        self.error_message = ""
        self.state = FormState.NAVIGATED
        self.navigate(self.listing_route)


class EditForm(_BaseForm):
    """Loads an existing record, lets fields change, and PUTs the result."""

    def __init__(self, client: httpx.Client, navigate: Navigate, record_id: int) -> None:
        super().__init__(client, navigate)
        self.record_id = record_id
        self.values: Optional[Dict[str, Any]] = None
        self.state = FormState.LOADING

    @property
    def url(self) -> str:
        return f"/{self.resource}/{self.record_id}"

    def load(self) -> bool:
        self.state = FormState.LOADING
        try:
            response = self.client.get(self.url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            self._fail("loading", e)
            return False
        data = response.json()
        self.values = {name: data.get(name) for name in self.fields}
        self.error_message = ""
        self.state = FormState.LOADED
        return True

    def render(self) -> str:
        if self.values is None:
            return "Loading..."
        lines = [f"Edit {self.label.capitalize()}"]
        for name in self.fields:
            value = self.values.get(name)
            lines.append(f"{self.field_labels.get(name, name)}: {'' if value is None else value}")
        if self.error_message:
            lines.append(self.error_message)
        return "\n".join(lines)

    def change(self, field: str, value: Any) -> None:
        if self.values is None:
            raise RuntimeError(f"{self.label} has not been loaded yet")
        if field not in self.values:
            raise KeyError(f"{self.label} form has no field {field!r}")
        self.values[field] = value
        self.state = FormState.EDITING

    def save(self) -> bool:
        if self.values is None:
            raise RuntimeError(f"{self.label} has not been loaded yet")
        self.state = FormState.SAVING
        try:
            response = self.client.put(self.url, json=self.payload())
            response.raise_for_status()
        except httpx.HTTPError as e:
            self._fail("saving", e)
            return False

        self.error_message = ""
        self.state = FormState.NAVIGATED
        self.navigate(self.listing_route)
        return True


# --- Students ---
class _StudentFields:
    resource = "students"
    label = "student"
    listing_route = "/"
    fields = ("name", "class")
    field_labels = {"name": "Name", "class": "Class"}


class StudentForm(_StudentFields, CreateForm):
    pass


class EditStudentForm(_StudentFields, EditForm):
    pass


# --- Books ---
class _BookFields:
    resource = "books"
    label = "book"
    listing_route = "/books"
    fields = ("name", "author", "publication", "year")
    field_labels = {"name": "Name", "author": "Author", "publication": "Publication", "year": "Year"}

    def payload(self) -> Dict[str, Any]:
        data = {name: _optional_text(value) for name, value in self.values.items()}
        data["year"] = _optional_int(self.values.get("year"))
        return data


class BookForm(_BookFields, CreateForm):
    pass


class EditBookForm(_BookFields, EditForm):
    pass


# --- Loan records ---
class _LoanFields:
    resource = "library"
    label = "loan record"
    listing_route = "/library"
    fields = ("startDate", "endDate", "studentId", "bookId")
    field_labels = {"startDate": "Start date", "endDate": "End date", "studentId": "Student", "bookId": "Book"}

    def payload(self) -> Dict[str, Any]:
        return {
            "startDate": _optional_text(self.values.get("startDate")),
            "endDate": _optional_text(self.values.get("endDate")),
            "studentId": _optional_int(self.values.get("studentId")),
            "bookId": _optional_int(self.values.get("bookId")),
        }


class LoanForm(_LoanFields, CreateForm):
    pass


class EditLoanForm(_LoanFields, EditForm):
    pass
