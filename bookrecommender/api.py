import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from .config import settings
from .errors import ErrorKind, Result, StorageError
from .models import User
from .service import BookRecommenderService, build_service

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO), format=LOG_FORMAT)
logger = logging.getLogger(__name__)

_service: Optional[BookRecommenderService] = None


def get_service() -> BookRecommenderService:
    """Dependency returning the process-wide service, built on first use."""
    global _service
    if _service is None:
        _service = build_service(settings)
    return _service


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _service
    try:
        yield
    finally:
        if _service is not None:
            _service.close()
            _service = None


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")


def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency validating the API key."""
    if api_key == settings.api_key:
        return api_key
    raise HTTPException(status_code=403, detail="Could not validate credentials")


# --- Error mapping ---
STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.VALIDATION: 422,
    ErrorKind.CONFLICT: 409,
    ErrorKind.NOT_OWNED: 403,
    ErrorKind.STORAGE_FAILURE: 503,
}


def unwrap(result: Result):
    """Return the value of a successful result or raise the matching HTTP error."""
    if result.ok:
        return result.value
    failure = result.error
    raise HTTPException(status_code=STATUS_BY_KIND[failure.kind], detail=failure.to_dict())


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": {"kind": ErrorKind.STORAGE_FAILURE.value, "code": "StorageFailure", "message": str(exc)}},
    )


# --- Models ---
class BookModel(BaseModel):
    id: int
    title: str
    authors: str
    year: str
    description: str = ""
    categories: str = ""
    publisher: str = ""
    price: str = ""
    month: str = ""


class UserCreateModel(BaseModel):
    user_id: str
    name: str
    surname: str
    tax_code: str
    email: str
    password: str


class UserModel(BaseModel):
    user_id: str
    name: str
    surname: str
    tax_code: str
    email: str


class CredentialsModel(BaseModel):
    handle: str = Field(description="User id, email or tax code")
    password: str


class LibraryCreateModel(BaseModel):
    name: str
    book_ids: List[int]


class LibraryModel(BaseModel):
    owner_id: str
    name: str
    book_ids: List[int]
    created_at: str


class RatingCreateModel(BaseModel):
    book_id: int
    stile: int = Field(ge=1, le=5)
    contenuto: int = Field(ge=1, le=5)
    gradevolezza: int = Field(ge=1, le=5)
    originalita: int = Field(ge=1, le=5)
    edizione: int = Field(ge=1, le=5)
    stile_note: str = ""
    contenuto_note: str = ""
    gradevolezza_note: str = ""
    originalita_note: str = ""
    edizione_note: str = ""
    overall_note: str = ""


class RatingModel(BaseModel):
    owner_id: str
    library_id: str
    book_id: int
    stile: int
    stile_note: str
    contenuto: int
    contenuto_note: str
    gradevolezza: int
    gradevolezza_note: str
    originalita: int
    originalita_note: str
    edizione: int
    edizione_note: str
    overall: float
    overall_note: str
    created_at: str


class RatingSummaryModel(BaseModel):
    book_id: int
    count: int
    means: Dict[str, float]
    overall: float
    sample_notes: Dict[str, str]
    overall_note: str


class RecommendationCreateModel(BaseModel):
    read_book_id: int
    recommended_book_ids: List[int]
    comment: str = ""


class RejectedModel(BaseModel):
    book_id: int
    reason: str


class RecommendationOutcomeModel(BaseModel):
    accepted: List[int]
    rejected: List[RejectedModel]
    existing: int


class RecommendedBookModel(BaseModel):
    book_id: int
    title: str
    count: int


# --- Health ---
@app.get("/health")
def health(service: BookRecommenderService = Depends(get_service)):
    """Lightweight health endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "backend": settings.backend,
        "total_books": len(service.catalog),
        "version": settings.app_version,
    }


# --- Catalog ---
@app.get("/books/search/title", response_model=List[BookModel])
def search_by_title(q: str = Query(..., description="Title substring"),
                    service: BookRecommenderService = Depends(get_service)):
    return [BookModel(**b.to_dict()) for b in service.catalog.search_by_title(q)]


@app.get("/books/search/author", response_model=List[BookModel])
def search_by_author(q: str = Query(..., description="Author substring"),
                     service: BookRecommenderService = Depends(get_service)):
    return [BookModel(**b.to_dict()) for b in service.catalog.search_by_author(q)]


@app.get("/books/search/author-year", response_model=List[BookModel])
def search_by_author_and_year(author: str = Query(...), year: str = Query(...),
                              service: BookRecommenderService = Depends(get_service)):
    return [BookModel(**b.to_dict()) for b in service.catalog.search_by_author_and_year(author, year)]


@app.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: int, service: BookRecommenderService = Depends(get_service)):
    """Get a single book by its catalog id."""
    book = unwrap(service.catalog.find_by_id(book_id))
    return BookModel(**book.to_dict())


@app.get("/books/{book_id}/ratings", response_model=List[RatingModel])
def get_book_ratings(book_id: int, service: BookRecommenderService = Depends(get_service)):
    """Every rating of a book, in the order they were given."""
    unwrap(service.catalog.find_by_id(book_id))
    return [RatingModel(**r.to_dict()) for r in service.aggregation.full_rating_detail(book_id)]


@app.get("/books/{book_id}/ratings/summary", response_model=RatingSummaryModel)
def get_rating_summary(book_id: int, service: BookRecommenderService = Depends(get_service)):
    unwrap(service.catalog.find_by_id(book_id))
    summary = service.aggregation.aggregate_ratings(book_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="This book has not been rated yet.")
    return RatingSummaryModel(**summary.to_dict())


@app.get("/books/{book_id}/recommendations", response_model=List[RecommendedBookModel])
def get_recommended_books(book_id: int, limit: Optional[int] = Query(None, ge=1),
                          service: BookRecommenderService = Depends(get_service)):
    """Books readers suggested alongside this one, most suggested first."""
    unwrap(service.catalog.find_by_id(book_id))
    ranked = service.aggregation.most_recommended(book_id, limit)
    return [RecommendedBookModel(book_id=b.id, title=b.title, count=n) for b, n in ranked]


# --- Users ---
@app.post("/users", response_model=UserModel, status_code=201, dependencies=[Depends(get_api_key)])
def register_user(payload: UserCreateModel, service: BookRecommenderService = Depends(get_service)):
    user = unwrap(service.users.register(User(**payload.model_dump())))
    return UserModel(**user.to_dict())


@app.post("/users/authenticate", response_model=UserModel)
def authenticate_user(payload: CredentialsModel, service: BookRecommenderService = Depends(get_service)):
    result = service.users.authenticate(payload.handle, payload.password)
    if not result.ok and result.error.kind is not ErrorKind.STORAGE_FAILURE:
        # same answer for unknown handle and wrong password
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return UserModel(**unwrap(result).to_dict())


@app.get("/users/{handle}", response_model=UserModel)
def get_user(handle: str, service: BookRecommenderService = Depends(get_service)):
    user = service.users.find_by_handle(handle)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found.")
    return UserModel(**user.to_dict())


# --- Libraries ---
@app.get("/users/{owner_id}/libraries", response_model=List[LibraryModel])
def list_libraries(owner_id: str, service: BookRecommenderService = Depends(get_service)):
    return [LibraryModel(**lib.to_dict()) for lib in service.libraries.list_libraries(owner_id)]


@app.post("/users/{owner_id}/libraries", response_model=LibraryModel, status_code=201,
          dependencies=[Depends(get_api_key)])
def create_library(owner_id: str, payload: LibraryCreateModel,
                   service: BookRecommenderService = Depends(get_service)):
    library = unwrap(service.libraries.create_library(owner_id, payload.name, payload.book_ids))
    return LibraryModel(**library.to_dict())


@app.delete("/users/{owner_id}/libraries/{name}", dependencies=[Depends(get_api_key)])
def delete_library(owner_id: str, name: str, service: BookRecommenderService = Depends(get_service)):
    if not service.libraries.delete_library(owner_id, name):
        raise HTTPException(status_code=404, detail="Library not found.")
    return {"deleted": name}


@app.post("/users/{owner_id}/libraries/{name}/ratings", response_model=RatingModel, status_code=201,
          dependencies=[Depends(get_api_key)])
def rate_book(owner_id: str, name: str, payload: RatingCreateModel,
              service: BookRecommenderService = Depends(get_service)):
    scores = [payload.stile, payload.contenuto, payload.gradevolezza, payload.originalita, payload.edizione]
    notes = [payload.stile_note, payload.contenuto_note, payload.gradevolezza_note,
             payload.originalita_note, payload.edizione_note]
    rating = unwrap(service.ratings.rate_book(owner_id, name, payload.book_id, scores, notes,
                                              payload.overall_note))
    return RatingModel(**rating.to_dict())


@app.post("/users/{owner_id}/libraries/{name}/recommendations", response_model=RecommendationOutcomeModel,
          status_code=201, dependencies=[Depends(get_api_key)])
def recommend_books(owner_id: str, name: str, payload: RecommendationCreateModel,
                    service: BookRecommenderService = Depends(get_service)):
    outcome = unwrap(service.recommendations.recommend(owner_id, name, payload.read_book_id,
                                                       payload.recommended_book_ids, payload.comment))
    return RecommendationOutcomeModel(
        accepted=outcome.accepted_ids,
        rejected=[RejectedModel(book_id=r.book_id, reason=r.reason) for r in outcome.rejected],
        existing=outcome.existing,
    )
