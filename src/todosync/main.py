import logging

from fastapi import Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .backend import Backend, get_backend
from .errors import MalformedIdentifierError, StorageError, TodoNotFoundError
from .routers import todos as todos_router
from .settings import get_settings

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "todos",
        "description": "CRUD operations for Todo items and the changelist used for incremental sync.",
    },
]

app = FastAPI(
    title="Todo Sync Backend",
    description="Todo API where every mutation is recorded in a versioned changelog for client sync.",
    version="0.1.0",
    openapi_tags=openapi_tags,
)

_settings = get_settings()

allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return a consistent JSON structure for request validation errors.

    Response format:
        {
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": [... pydantic/fastapi error details ...]
        }
    """
    return JSONResponse(
        status_code=400,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            # validator errors carry the raised ValueError in ctx
            "detail": jsonable_encoder(exc.errors()),
        },
    )


@app.exception_handler(TodoNotFoundError)
async def not_found_handler(request: Request, exc: TodoNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "NotFound", "detail": "Todo not found"})


@app.exception_handler(MalformedIdentifierError)
async def malformed_identifier_handler(request: Request, exc: MalformedIdentifierError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "MalformedIdentifier", "detail": str(exc)},
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=503,
        content={"error": "StorageError", "detail": "Storage backend unavailable"},
    )


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check(backend: Backend = Depends(get_backend)):
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health and the active backend.
    """
    return {"message": "Healthy", "backend": backend.name}


app.include_router(todos_router.router)
