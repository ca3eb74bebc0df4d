import subprocess
import sys
from typing import Optional

import httpx
import typer
from rich.console import Console

from config import settings
from forms import BookForm, EditStudentForm, LoanForm, StudentForm, describe_error
from ui_helpers import print_record, print_records, set_output_mode

APP_NAME = "Student Library CLI"
RESOURCES = ("students", "books", "library")

console = Console()

# Options shared by all commands, filled in by the callback
_state = {"base_url": settings.api_base_url}


def make_client(base_url: str) -> httpx.Client:
    """HTTP client for the API server."""
    return httpx.Client(base_url=base_url, timeout=10.0)


def _navigated(route: str) -> None:
    console.print(f"[dim]-> {route}[/]")


def _run_form(form, *, action: str, kind: str) -> None:
    ok = form.submit() if action == "create" else form.save()
    if not ok:
        print(form.error_message)
        raise typer.Exit(code=1)
    if form.success_message:
        print(form.success_message)
    else:
        print(f"{kind.capitalize()} saved.")


# --- Typer CLI Application ---
app = typer.Typer(help=APP_NAME)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        help="API server address (default: API_BASE_URL or http://API_HOST:PORT)",
    ),
):
    """Global CLI options (output mode, server address)."""
    if output:
        set_output_mode(output)
    _state["base_url"] = base_url or settings.api_base_url


@app.command("list")
def cli_list(kind: str = typer.Argument("students", help="students | books | library")):
    """List students, books or loan records."""
    if kind not in RESOURCES:
        print(f"Unknown listing: {kind}. Use one of: {', '.join(RESOURCES)}.")
        raise typer.Exit(code=2)
    with make_client(_state["base_url"]) as client:
        try:
            response = client.get(f"/{kind}")
            response.raise_for_status()
        except httpx.HTTPError as e:
            print(f"Could not fetch {kind}: {describe_error(e)}")
            raise typer.Exit(code=1)
    print_records(kind, response.json())


@app.command("show-student")
def cli_show_student(student_id: int):
    """Show a single student."""
    with make_client(_state["base_url"]) as client:
        try:
            response = client.get(f"/students/{student_id}")
            response.raise_for_status()
        except httpx.HTTPError as e:
            print(f"Could not fetch student {student_id}: {describe_error(e)}")
            raise typer.Exit(code=1)
    print_record("students", response.json())


@app.command("add-student")
def cli_add_student(name: str, class_: str = typer.Argument(..., metavar="CLASS", help="Section or grade label")):
    """Create a student."""
    with make_client(_state["base_url"]) as client:
        form = StudentForm(client, _navigated)
        form.set("name", name)
        form.set("class", class_)
        _run_form(form, action="create", kind="student")


@app.command("add-book")
def cli_add_book(name: str, author: str, publication: str, year: int):
    """Create a book."""
    with make_client(_state["base_url"]) as client:
        form = BookForm(client, _navigated)
        form.set("name", name)
        form.set("author", author)
        form.set("publication", publication)
        form.set("year", str(year))
        _run_form(form, action="create", kind="book")


@app.command("add-loan")
def cli_add_loan(
    student_id: int,
    book_id: int,
    start: str = typer.Option(..., "--start", help="Start date, ISO 8601"),
    end: Optional[str] = typer.Option(None, "--end", help="End date, ISO 8601 (omit while the book is out)"),
):
    """Record a book borrowed by a student."""
    with make_client(_state["base_url"]) as client:
        form = LoanForm(client, _navigated)
        form.set("studentId", str(student_id))
        form.set("bookId", str(book_id))
        form.set("startDate", start)
        form.set("endDate", end or "")
        _run_form(form, action="create", kind="loan record")


@app.command("edit-student")
def cli_edit_student(
    student_id: int,
    name: Optional[str] = typer.Option(None, "--name"),
    class_: Optional[str] = typer.Option(None, "--class"),
):
    """Change a student's name and/or class."""
    with make_client(_state["base_url"]) as client:
        form = EditStudentForm(client, _navigated, student_id)
        if not form.load():
            print(form.error_message)
            raise typer.Exit(code=1)
        if name is not None:
            form.change("name", name)
        if class_ is not None:
            form.change("class", class_)
        _run_form(form, action="save", kind="student")


@app.command("serve")
def cli_serve(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind (default: API_HOST)"),
    port: Optional[int] = typer.Option(None, "--port", help="Port to listen on (default: PORT or 3001)"),
    reload: bool = typer.Option(False, "--reload", help="Restart on code changes"),
):
    """Start the API server with uvicorn."""
    host = host or settings.api_host
    port = int(port or settings.port)
    print(f"Starting API server on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    try:
        subprocess.run(args, check=True)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] `uvicorn` could not be started. Make sure it is installed.")
        raise typer.Exit(code=1)
    except subprocess.CalledProcessError as e:
        console.print(f"[bold red]API server exited with status {e.returncode}[/]")
        raise typer.Exit(code=e.returncode)


if __name__ == "__main__":
    app()
