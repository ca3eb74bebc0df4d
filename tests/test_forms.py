import httpx
import pytest

from forms import (
    BookForm,
    CreateForm,
    EditBookForm,
    EditLoanForm,
    EditStudentForm,
    FormState,
    LoanForm,
    StudentForm,
    describe_error,
)


class Navigator:
    def __init__(self):
        self.routes = []

    def __call__(self, route):
        self.routes.append(route)


@pytest.fixture
def nav():
    return Navigator()


def _failing_client(status_code=500, body=None):
    def handler(request):
        if body is None:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(status_code, json=body)
    return httpx.Client(transport=httpx.MockTransport(handler), base_url="http://testserver")


def test_student_form_starts_empty(client, nav):
    form = StudentForm(client, nav)
    assert form.values == {"name": "", "class": ""}
    assert form.state == FormState.IDLE


def test_student_form_submit(client, nav):
    form = StudentForm(client, nav)
    form.set("name", "Ada")
    form.set("class", "5A")
    assert form.state == FormState.EDITING

    assert form.submit() is True
    assert form.state == FormState.NAVIGATED
    assert form.success_message == "Student created successfully!"
    assert form.error_message == ""
    assert nav.routes == ["/"]

    students = client.get("/students").json()
    assert [(s["name"], s["class"]) for s in students] == [("Ada", "5A")]


def test_student_form_failure_keeps_input(nav):
    form = StudentForm(_failing_client(), nav)
    form.set("name", "Ada")
    form.set("class", "5A")

    assert form.submit() is False
    assert form.state == FormState.ERROR
    assert form.error_message.startswith("Error creating student: ")
    assert "connection refused" in form.error_message
    assert form.values == {"name": "Ada", "class": "5A"}
    assert nav.routes == []


def test_student_form_unknown_field(client, nav):
    form = StudentForm(client, nav)
    with pytest.raises(KeyError):
        form.set("grade", "A")


def test_cancel_resets_and_navigates(client, nav):
    form = StudentForm(client, nav)
    form.set("name", "Ada")
    form.error_message = "old error"

    form.cancel()
    assert form.values == {"name": "", "class": ""}
    assert form.error_message == ""
    assert form.state == FormState.NAVIGATED
    assert nav.routes == ["/"]
    assert client.get("/students").json() == []


def test_book_form_converts_year(client, nav):
    form = BookForm(client, nav)
    form.set("name", "Dune")
    form.set("author", "Frank Herbert")
    form.set("year", "1965")

    assert form.submit() is True
    assert nav.routes == ["/books"]
    book = client.get("/books").json()[0]
    assert book["year"] == 1965
    assert book["publication"] is None


def test_book_form_shows_api_error(client, nav):
    form = BookForm(client, nav)
    form.set("name", "Dune")
    form.set("year", "around 1965")

    assert form.submit() is False
    assert form.error_message == "Error creating book: Invalid request"


def test_loan_form_reports_missing_student(client, nav):
    book = client.post("/books", json={"name": "Dune"}).json()
    form = LoanForm(client, nav)
    form.set("startDate", "2024-01-10T09:00:00")
    form.set("studentId", "31")
    form.set("bookId", str(book["id"]))

    assert form.submit() is False
    assert form.error_message == "Error creating loan record: Student 31 does not exist"
    assert form.values["studentId"] == "31"


def test_loan_form_submit(client, nav):
    student = client.post("/students", json={"name": "Ada", "class": "5A"}).json()
    book = client.post("/books", json={"name": "Dune"}).json()
    form = LoanForm(client, nav)
    form.set("startDate", "2024-01-10T09:00:00")
    form.set("studentId", str(student["id"]))
    form.set("bookId", str(book["id"]))

    assert form.submit() is True
    assert nav.routes == ["/library"]
    loan = client.get("/library").json()[0]
    assert loan["endDate"] is None
    assert loan["student"] == {"name": "Ada"}


def test_edit_form_lifecycle(client, nav):
    student = client.post("/students", json={"name": "Ada", "class": "5A"}).json()
    form = EditStudentForm(client, nav, student["id"])
    assert form.state == FormState.LOADING
    assert form.render() == "Loading..."

    assert form.load() is True
    assert form.state == FormState.LOADED
    assert form.values == {"name": "Ada", "class": "5A"}
    assert "Name: Ada" in form.render()

    form.change("class", "6B")
    assert form.state == FormState.EDITING

    assert form.save() is True
    assert form.state == FormState.NAVIGATED
    assert nav.routes == ["/"]
    assert client.get(f"/students/{student['id']}").json()["class"] == "6B"


def test_edit_form_load_missing_record(client, nav):
    form = EditStudentForm(client, nav, 404)
    assert form.load() is False
    assert form.state == FormState.ERROR
    assert form.error_message == "Error loading student: Student not found"
    assert form.render() == "Loading..."


def test_edit_form_change_before_load(client, nav):
    form = EditStudentForm(client, nav, 1)
    with pytest.raises(RuntimeError):
        form.change("name", "Ada")


def test_edit_form_save_failure_is_surfaced(client, nav):
    student = client.post("/students", json={"name": "Ada", "class": "5A"}).json()
    form = EditStudentForm(client, nav, student["id"])
    form.load()
    client.delete(f"/students/{student['id']}")

    form.change("name", "Ada L.")
    assert form.save() is False
    assert form.error_message == "Error saving student: Student not found"
    assert form.values["name"] == "Ada L."
    assert "Error saving student" in form.render()
    assert nav.routes == []


def test_edit_book_and_loan_forms(client, nav):
    student = client.post("/students", json={"name": "Ada"}).json()
    book = client.post("/books", json={"name": "Dune", "year": 1965}).json()
    loan = client.post("/library", json={
        "startDate": "2024-01-10T09:00:00", "studentId": student["id"], "bookId": book["id"],
    }).json()

    book_form = EditBookForm(client, nav, book["id"])
    book_form.load()
    book_form.change("author", "Frank Herbert")
    assert book_form.save() is True
    assert client.get(f"/books/{book['id']}").json()["author"] == "Frank Herbert"

    loan_form = EditLoanForm(client, nav, loan["id"])
    loan_form.load()
    loan_form.change("endDate", "2024-02-01T00:00:00")
    assert loan_form.save() is True
    assert client.get(f"/library/{loan['id']}").json()["endDate"] == "2024-02-01T00:00:00"
    assert nav.routes == ["/books", "/library"]


def test_describe_error_without_json_body():
    request = httpx.Request("GET", "http://testserver/students")
    response = httpx.Response(502, text="Bad gateway", request=request)
    exc = httpx.HTTPStatusError("bad gateway", request=request, response=response)
    assert describe_error(exc) == "Request failed with status code 502"


def test_field_labels_are_not_shared():
    with pytest.raises(TypeError):
        CreateForm.field_labels["name"] = "Name"
    assert StudentForm.field_labels is not BookForm.field_labels
    assert dict(CreateForm.field_labels) == {}
