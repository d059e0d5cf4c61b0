from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .repositories import Repository, StoreError, build_repository
from .routers import auth as auth_router
from .routers import updates as updates_router
from .settings import Settings, get_settings
from .users import UserRepository, build_user_repository

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "updates",
        "description": "CRUD operations for work updates with filtering, search, pagination and stats.",
    },
    {"name": "auth", "description": "Account registration, login and profile management."},
]


def format_validation_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Flatten pydantic/FastAPI error details into one item per violated rule:
    {type, location, path, msg, value?}.
    """
    items = []
    for err in errors:
        loc = tuple(err.get("loc", ()))
        location = str(loc[0]) if loc else "body"
        path = ".".join(str(p) for p in loc[1:]) or location
        if err.get("type") == "missing":
            msg = f"{path} is required"
        elif err.get("type") == "value_error" and "error" in err.get("ctx", {}):
            msg = str(err["ctx"]["error"])
        else:
            msg = err.get("msg", "Invalid value")
        item: Dict[str, Any] = {"type": "field", "location": location, "path": path, "msg": msg}
        if err.get("type") != "missing" and "input" in err:
            item["value"] = err["input"]
        items.append(item)
    return items


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Reject invalid bodies and query strings before they reach a handler.

    Response format:
        {
            "message": "Validation failed",
            "errors": [{"type": "field", "location": "body", "path": "time", "msg": "...", "value": "25:00"}]
        }
    """
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder(
            {"message": "Validation failed", "errors": format_validation_errors(list(exc.errors()))}
        ),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def store_exception_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Store failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"message": "Server error", "error": str(exc)})


# PUBLIC_INTERFACE
def create_app(
    settings: Optional[Settings] = None,
    repository: Optional[Repository] = None,
    user_repository: Optional[UserRepository] = None,
) -> FastAPI:
    """
    Build the application. Stores are constructed here once and shared by every request;
    pass them explicitly to run against a specific backend.
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="Work Log Backend",
        description="Backend API for recording work updates with search, filtering and statistics.",
        version="0.1.0",
        openapi_tags=openapi_tags,
    )
    app.state.settings = settings
    app.state.repository = repository or build_repository(settings)
    app.state.user_repository = user_repository or build_user_repository(settings)

    # Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
    allow_all = (settings.cors_allow_origins == ["*"]) or (len(settings.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(StoreError, store_exception_handler)

    @app.get("/", summary="Health Check", tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health.
        """
        return {"message": "Healthy", "backend": settings.persistence_backend}

    app.include_router(updates_router.router)
    app.include_router(auth_router.router)
    return app


app = create_app()
