from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
from urllib.parse import quote
import logging
import sqlite3

from fastapi import APIRouter, Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from backend.app.config import settings
from backend.app.logging_setup import setup_logging
from backend.app.db import borrow_connection, dispose_engine, init_engine
from backend.app.exceptions import (
    AuthenticationError,
    InputValidationError,
    OperationFailedError,
)
from backend.app.validation import (
    CategoriesIn,
    GetSessionIn,
    NewPersonIn,
    NewRatingIn,
    SessionIn,
    UndoIn,
    parse_payload,
)
from backend.perception.catalog import DEFAULT_LANGUAGE, fetch_next_image, get_categories
from backend.perception.credentials import (
    get_cookie_hash,
    get_person_from_session,
    require_valid_credential,
)
from backend.perception.identity import ClientInfo, create_new_person
from backend.perception.ratings import (
    count_ratings,
    count_ratings_by_category,
    create_new_rating,
    undo_last_rating,
)
from backend.perception.sessions import create_or_retrieve_session
from backend.perception.stats import get_category_averages, get_minmax_images

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

LOOPBACK_HOSTS = {"127.0.0.1", "::1", "localhost"}


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_engine()
    yield
    dispose_engine()


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Every failure is a 400 with an "errors" list; clients don't rely on finer codes.
def _errors(errors, status_code: int = 400) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"errors": list(errors)})


@app.exception_handler(InputValidationError)
async def input_validation_handler(request: Request, exc: InputValidationError):
    logger.info(f"{request.url.path} => errors: {exc.errors}")
    return _errors(exc.errors)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        messages.append(f"{loc}: {err.get('msg', 'invalid value')}")
    logger.info(f"{request.url.path} => errors: {messages}")
    return _errors(messages)


@app.exception_handler(AuthenticationError)
async def authentication_handler(request: Request, exc: AuthenticationError):
    return _errors([exc.message])


@app.exception_handler(OperationFailedError)
async def operation_failed_handler(request: Request, exc: OperationFailedError):
    logger.info(f"{request.url.path} => {exc.message}")
    return _errors([exc.message])


@app.exception_handler(sqlite3.Error)
async def storage_error_handler(request: Request, exc: sqlite3.Error):
    logger.warning(f"{request.url.path} => storage error: {exc}")
    return _errors([str(exc)])


@app.exception_handler(PoolTimeoutError)
async def pool_timeout_handler(request: Request, exc: PoolTimeoutError):
    logger.warning(f"{request.url.path} => no database connection available: {exc}")
    return _errors(["server busy, please retry"])


@app.get("/health")
def health():
    return {"status": "ok", "app": settings.app_name, "env": settings.app_env}


@app.get("/")
def root():
    return {"message": "Perception survey API is running", "docs": "/docs", "health": "/health"}


def client_info(request: Request) -> ClientInfo:
    ip = request.client.host if request.client else None
    forwarded = request.headers.get("x-forwarded-for")
    if settings.trust_proxy_loopback and forwarded and ip in LOOPBACK_HOSTS:
        # the address our own proxy appended is the one we can trust
        hops = [h.strip() for h in forwarded.split(",") if h.strip()]
        if hops:
            ip = hops[-1]
    return ClientInfo(ip=ip, user_agent=request.headers.get("user-agent", ""))


def request_payload(request: Request, body: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    # GET-friendly endpoints take fields from the query string too; body wins
    payload: Dict[str, Any] = dict(request.query_params)
    payload.update(body or {})
    return payload


router = APIRouter(prefix="/api/v1")


@router.post("/new")
def new_rating(request: Request, body: Optional[Dict[str, Any]] = Body(default=None)):
    data = parse_payload(NewRatingIn, body)

    with borrow_connection() as conn:
        require_valid_credential(conn, data.session_id, data.cookie_hash)

        ts = create_new_rating(
            conn,
            client_info(request),
            session_id=data.session_id,
            image_id=data.image_id,
            category_id=data.category_id,
            rating=data.rating,
        )

        return {
            "status": "ok",
            "timestamp": ts,
            "session_rating_count": count_ratings(conn, data.session_id),
            "category_counts": count_ratings_by_category(conn, data.session_id),
        }


@router.post("/undo")
def undo(body: Optional[Dict[str, Any]] = Body(default=None)):
    data = parse_payload(UndoIn, body)

    with borrow_connection() as conn:
        require_valid_credential(conn, data.session_id, data.cookie_hash)

        ts = undo_last_rating(conn, data.session_id)
        if ts is None:
            raise OperationFailedError("undo failed")

        return {
            "status": "ok",
            "timestamp": ts,
            "category_counts": count_ratings_by_category(conn, data.session_id),
        }


@router.api_route("/fetch", methods=["GET", "POST"])
def fetch(request: Request, body: Optional[Dict[str, Any]] = Body(default=None)):
    """Next not-yet-rated image for the session (one at a time for now)."""
    data = parse_payload(SessionIn, request_payload(request, body))
    with borrow_connection() as conn:
        return {"main_image": fetch_next_image(conn, data.session_id)}


@router.api_route("/getstats", methods=["GET", "POST"])
def getstats(request: Request, body: Optional[Dict[str, Any]] = Body(default=None)):
    data = parse_payload(SessionIn, request_payload(request, body))
    with borrow_connection() as conn:
        extremes = get_minmax_images(conn, data.session_id)
        averages = get_category_averages(conn, data.session_id)

    out = {
        "averages": averages,
        "minImages": [e.to_dict() for e in extremes["minImages"]],
        "maxImages": [e.to_dict() for e in extremes["maxImages"]],
    }
    logger.debug(f"getstats({data.session_id}) => {out}")
    return out


@router.api_route("/getcategories", methods=["GET", "POST"])
def getcategories(request: Request, body: Optional[Dict[str, Any]] = Body(default=None)):
    data = parse_payload(CategoriesIn, request_payload(request, body))
    with borrow_connection() as conn:
        return {"categories": get_categories(conn, data.langabbr or DEFAULT_LANGUAGE)}


@router.api_route("/countratingsbycategory", methods=["GET", "POST"])
def countratingsbycategory(request: Request, body: Optional[Dict[str, Any]] = Body(default=None)):
    data = parse_payload(SessionIn, request_payload(request, body))
    with borrow_connection() as conn:
        return {"category_counts": count_ratings_by_category(conn, data.session_id)}


@router.post("/newperson")
def newperson(request: Request, body: Optional[Dict[str, Any]] = Body(default=None)):
    """Store a filled-out intake survey and hand back a session + cookie hash."""
    data = parse_payload(NewPersonIn, body)

    with borrow_connection() as conn:
        person_id = create_new_person(conn, data.to_intake())
        session_id = create_or_retrieve_session(conn, person_id)
        cookie_hash = get_cookie_hash(conn, client_info(request), person_id)

    logger.info(f"newperson => person_id={person_id} session_id={session_id}")
    return {
        "session_id": session_id,
        "cookie_hash": cookie_hash,
        "cookie_hash_urlencoded": quote(cookie_hash, safe=""),
    }


@router.post("/getsession")
def getsession(request: Request, body: Optional[Dict[str, Any]] = Body(default=None)):
    """Given a session_id or a cookie_hash, return both values known for the visitor."""
    data = parse_payload(GetSessionIn, body)

    session_id = data.session_id
    with borrow_connection() as conn:
        person_id = get_person_from_session(conn, session_id, data.cookie_hash)
        if person_id is not None and not session_id:
            session_id = create_or_retrieve_session(conn, person_id)

    info = client_info(request)
    logger.info(
        f"getsession({info.ip}, {info.user_agent}, session_id={data.session_id}) "
        f"=> session_id={session_id} person_id={person_id}"
    )
    return {"session_id": session_id, "cookie_hash": data.cookie_hash}


app.include_router(router)
