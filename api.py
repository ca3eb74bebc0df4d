import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings
from library import Library, LibraryError, ReferenceNotFoundError, StorageError

logger = logging.getLogger(__name__)

STUDENT_NOT_FOUND = "Student not found"
BOOK_NOT_FOUND = "Book not found"
LOAN_NOT_FOUND = "Details not found"


# --- Models ---
class StudentModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str | None = None
    class_: str | None = Field(default=None, alias="class")
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")


class StudentPayload(BaseModel):
    """Body of POST/PUT /students. On PUT only the keys sent are applied."""
    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    class_: str | None = Field(default=None, alias="class")


class BookModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str | None = None
    author: str | None = None
    publication: str | None = None
    year: int | None = None
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")


class BookPayload(BaseModel):
    name: str | None = None
    author: str | None = None
    publication: str | None = Field(default=None, description="Publisher name")
    year: int | None = Field(default=None, ge=-9999, le=9999)


class LoanModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")
    student_id: int | None = Field(default=None, alias="studentId")
    book_id: int | None = Field(default=None, alias="bookId")
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")


class NameModel(BaseModel):
    name: str | None = None


class LoanWithNamesModel(LoanModel):
    student: NameModel | None = None
    book: NameModel | None = None


class LoanPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: datetime | None = Field(default=None, alias="startDate")
    end_date: datetime | None = Field(default=None, alias="endDate", description="Empty while the book is out")
    student_id: int | None = Field(default=None, alias="studentId")
    book_id: int | None = Field(default=None, alias="bookId")


class StudentBookModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    student_id: int = Field(alias="studentId")
    book_id: int = Field(alias="bookId")
    created_at: str | None = Field(default=None, alias="createdAt")
    updated_at: str | None = Field(default=None, alias="updatedAt")


class HealthModel(BaseModel):
    status: str
    database: bool
    timestamp: str


# --- Dependencies ---
def get_library(request: Request) -> Library:
    """The repository built in the app lifespan."""
    return request.app.state.library


def _changes(payload: BaseModel) -> dict:
    """Only the keys present in the request body, under their JSON names."""
    return payload.model_dump(by_alias=True, exclude_unset=True)


router = APIRouter()


# --- Health ---
@router.get("/health", response_model=HealthModel)
def health(library: Library = Depends(get_library)):
    db_ok = library.ping()
    return HealthModel(
        status="healthy" if db_ok else "degraded",
        database=db_ok,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


# --- Students ---
@router.post("/students", response_model=StudentModel)
def create_student(payload: StudentPayload, library: Library = Depends(get_library)):
    student = library.add_student(name=payload.name, class_=payload.class_)
    return student.to_dict()


@router.get("/students", response_model=List[StudentModel])
def list_students(library: Library = Depends(get_library)):
    return [s.to_dict() for s in library.list_students()]


@router.get("/students/{student_id}", response_model=StudentModel)
def get_student(student_id: int, library: Library = Depends(get_library)):
    student = library.find_student(student_id)
    if not student:
        raise HTTPException(status_code=404, detail=STUDENT_NOT_FOUND)
    return student.to_dict()


@router.put("/students/{student_id}", response_model=StudentModel)
def update_student(student_id: int, payload: StudentPayload, library: Library = Depends(get_library)):
    """Update a student. Fields missing from the body keep their value; fields
    sent (even as an empty string) replace it."""
    student = library.update_student(student_id, _changes(payload))
    if not student:
        raise HTTPException(status_code=404, detail=STUDENT_NOT_FOUND)
    return student.to_dict()


@router.delete("/students/{student_id}", status_code=204)
def delete_student(student_id: int, library: Library = Depends(get_library)):
    if not library.remove_student(student_id):
        raise HTTPException(status_code=404, detail=STUDENT_NOT_FOUND)
    return Response(status_code=204)


@router.get("/students/{student_id}/books", response_model=List[BookModel])
def list_student_books(student_id: int, library: Library = Depends(get_library)):
    books = library.list_student_books(student_id)
    if books is None:
        raise HTTPException(status_code=404, detail=STUDENT_NOT_FOUND)
    return [b.to_dict() for b in books]


@router.post("/students/{student_id}/books/{book_id}", response_model=StudentBookModel)
def link_student_book(student_id: int, book_id: int, library: Library = Depends(get_library)):
    try:
        link = library.link_book(student_id, book_id)
    except ReferenceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return link.to_dict()


@router.delete("/students/{student_id}/books/{book_id}", status_code=204)
def unlink_student_book(student_id: int, book_id: int, library: Library = Depends(get_library)):
    if not library.unlink_book(student_id, book_id):
        raise HTTPException(status_code=404, detail="Association not found")
    return Response(status_code=204)


# --- Books ---
@router.post("/books", response_model=BookModel)
def create_book(payload: BookPayload, library: Library = Depends(get_library)):
    book = library.add_book(**payload.model_dump())
    return book.to_dict()


@router.get("/books", response_model=List[BookModel])
def list_books(library: Library = Depends(get_library)):
    return [b.to_dict() for b in library.list_books()]


@router.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: int, library: Library = Depends(get_library)):
    book = library.find_book(book_id)
    if not book:
        raise HTTPException(status_code=404, detail=BOOK_NOT_FOUND)
    return book.to_dict()


@router.put("/books/{book_id}", response_model=BookModel)
def update_book(book_id: int, payload: BookPayload, library: Library = Depends(get_library)):
    book = library.update_book(book_id, _changes(payload))
    if not book:
        raise HTTPException(status_code=404, detail=BOOK_NOT_FOUND)
    return book.to_dict()


@router.delete("/books/{book_id}", status_code=204)
def delete_book(book_id: int, library: Library = Depends(get_library)):
    if not library.remove_book(book_id):
        raise HTTPException(status_code=404, detail=BOOK_NOT_FOUND)
    return Response(status_code=204)


# --- Loan records ---
@router.post("/library", response_model=LoanModel)
def create_loan(payload: LoanPayload, library: Library = Depends(get_library)):
    loan = library.add_loan(
        start_date=payload.start_date,
        end_date=payload.end_date,
        student_id=payload.student_id,
        book_id=payload.book_id,
    )
    return loan.to_dict()


@router.get("/library", response_model=List[LoanWithNamesModel])
def list_loans(library: Library = Depends(get_library)):
    return [loan.to_dict() for loan in library.list_loans()]


@router.get("/library/{loan_id}", response_model=LoanModel)
def get_loan(loan_id: int, library: Library = Depends(get_library)):
    loan = library.find_loan(loan_id)
    if not loan:
        raise HTTPException(status_code=404, detail=LOAN_NOT_FOUND)
    return loan.to_dict()


@router.put("/library/{loan_id}", response_model=LoanModel)
def update_loan(loan_id: int, payload: LoanPayload, library: Library = Depends(get_library)):
    loan = library.update_loan(loan_id, _changes(payload))
    if not loan:
        raise HTTPException(status_code=404, detail=LOAN_NOT_FOUND)
    return loan.to_dict()


@router.delete("/library/{loan_id}", status_code=204)
def delete_loan(loan_id: int, library: Library = Depends(get_library)):
    if not library.remove_loan(loan_id):
        raise HTTPException(status_code=404, detail=LOAN_NOT_FOUND)
    return Response(status_code=204)


# --- Error handlers ---
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=422, content={"error": "Invalid request", "details": details})


async def reference_error_handler(request: Request, exc: ReferenceNotFoundError):
    return JSONResponse(status_code=422, content={"error": str(exc)})


async def storage_error_handler(request: Request, exc: StorageError):
    # The underlying message was logged by the repository; clients get a generic one.
    return JSONResponse(status_code=500, content={"error": "Database error"})


def create_app(db_file: Optional[str] = None, library: Optional[Library] = None) -> FastAPI:
    """Build the API. The repository is created at startup unless one is given."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
        if library is not None:
            app.state.library = library
        else:
            try:
                app.state.library = Library(db_file=db_file)
            except LibraryError as e:
                logger.error("Unable to connect to the database: %s", e)
                raise
        if db_file is None and library is None:
            logger.info("Library API ready, database %s", settings.describe_database())
        else:
            logger.info("Library API ready, database %s", app.state.library.db_file)
        yield
        logger.info("Library API shutting down")

    app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(ReferenceNotFoundError, reference_error_handler)
    app.add_exception_handler(StorageError, storage_error_handler)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.port)
