from fastapi import APIRouter, FastAPI, Depends, Header, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from walletwise import crud, errors, schemas
from walletwise.config import Settings, get_settings
from walletwise.database import init_db, make_engine, make_session_factory
from walletwise.logs import init_logging, request_context_middleware
from walletwise.models import KNOWN_CATEGORIES
from walletwise.store import LedgerStore
from walletwise.validation import validate_create

logger = logging.getLogger("walletwise")

router = APIRouter(tags=["Expenses"])


def get_store(request: Request) -> LedgerStore:
    """Dependency returning the store handle owned by the application."""
    return request.app.state.store


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


@router.post(
    "/expenses",
    response_model=schemas.ExpenseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new expense (idempotent)",
)
def create_expense(
    expense_in: schemas.ExpenseIn,
    idempotency_key: Optional[str] = Header(default=None, alias="Idempotency-Key"),
    store: LedgerStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    """
    Create a new expense entry.

    - **Idempotent**: send the same `Idempotency-Key` header on every retry of
      one submission. The first request returns 201; repeats, including ones
      that raced the first, return 200 with the original record.
    - `amount` is in whole currency units and is stored as integer minor units.
    """
    intent = validate_create(expense_in, idempotency_key, strict_categories=settings.strict_categories)
    expense, was_created = crud.create_expense(store, intent, idempotency_key.strip())

    if not was_created:
        # 200 (not 201) signals an idempotent replay
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content=jsonable_encoder(schemas.ExpenseResponse.model_validate(expense)),
        )

    return expense


@router.get(
    "/expenses",
    response_model=list[schemas.ExpenseResponse],
    summary="List expenses with optional filter and sort",
)
def list_expenses(
    category: Optional[str] = Query(default=None, description="Filter by category (exact, case-sensitive)"),
    sort: Optional[str] = Query(default=None, description="`date_desc` for newest date first; default is most recently inserted first"),
    store: LedgerStore = Depends(get_store),
):
    """Retrieve all expenses matching the filter, fully materialized."""
    return crud.get_expenses(store, category=category, sort=sort)


@router.get(
    "/expenses/categories",
    response_model=schemas.CategoriesResponse,
    summary="Get known and used categories",
)
def list_categories(store: LedgerStore = Depends(get_store)):
    """Known categories for the entry form, plus the ones present in the store."""
    return schemas.CategoriesResponse(known=KNOWN_CATEGORIES, used=crud.get_all_categories(store))


def create_app(settings_override: Settings | None = None, store: LedgerStore | None = None) -> FastAPI:
    """Application factory.

    settings_override lets tests point at a temporary database; store lets
    them inject a store double directly.
    """
    settings = settings_override or get_settings()
    init_logging(debug=settings.debug)

    if store is None:
        engine = make_engine(settings.database_url)
        try:
            init_db(engine)
        except Exception:
            logger.exception("failed to create tables on startup")
            raise
        store = LedgerStore(
            make_session_factory(engine),
            max_retries=settings.db_max_retries,
            retry_backoff=settings.db_retry_backoff_seconds,
        )

    app = FastAPI(
        title=settings.app_name,
        description="A personal expense ledger API with idempotent expense creation.",
        version=settings.version,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.store = store

    app.middleware("http")(request_context_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    app.add_exception_handler(errors.InvalidInput, errors.invalid_input_handler)
    app.add_exception_handler(RequestValidationError, errors.request_validation_handler)
    app.add_exception_handler(errors.StorageError, errors.storage_error_handler)
    app.add_exception_handler(Exception, errors.server_error_handler)

    app.include_router(router, prefix=settings.api_prefix)

    @app.get("/", tags=["Health"])
    def root():
        return {"status": "ok", "message": f"{settings.app_name} is running."}

    @app.get("/health", tags=["Health"])
    def health():
        return {"status": "healthy"}

    return app


def run() -> None:
    """Serve the API with uvicorn (``walletwise-api`` console script)."""
    import os
    import uvicorn

    uvicorn.run(
        "walletwise.main:create_app",
        factory=True,
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
