from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.exceptions import RequestValidationError

from ..dependencies import get_repository
from ..query import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    SORT_FIELDS,
    ListQuery,
    SortBy,
    SortOrder,
    parse_tags,
)
from ..repositories import Repository
from ..schemas import (
    MessageOut,
    TagCount,
    UpdateOut,
    UpdatePage,
    UpdatePayload,
    UpdateStats,
    parse_calendar_date,
)
from ..utils import pagination_envelope

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/updates",
    tags=["updates"],
)

RECENT_WINDOW = timedelta(days=7)

_NOT_FOUND = {404: {"description": "Update not found", "model": MessageOut}}


def _query_error(name: str, message: str, value: Any) -> RequestValidationError:
    return RequestValidationError(
        [{"type": "value_error", "loc": ("query", name), "msg": message, "input": value}]
    )


def _parse_bound(name: str, raw: Optional[str]) -> Optional[date]:
    if raw is None or not raw.strip():
        return None
    try:
        return parse_calendar_date(raw)
    except ValueError:
        raise _query_error(name, f"{name} must be a valid ISO 8601 date", raw) from None


def list_query_params(
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Page size"),
    search: Optional[str] = Query(None, description="Terms matched against title/description"),
    tags: Optional[str] = Query(None, description="Comma-separated tags; any may match"),
    date_from: Optional[str] = Query(None, alias="dateFrom", description="Inclusive lower date bound"),
    date_to: Optional[str] = Query(None, alias="dateTo", description="Inclusive upper date bound"),
    sort_by: SortBy = Query("date", alias="sortBy"),
    sort_order: SortOrder = Query("desc", alias="sortOrder"),
) -> ListQuery:
    """
    Parse list query parameters into a ListQuery, rejecting anything out of bounds.
    """
    lower = _parse_bound("dateFrom", date_from)
    upper = _parse_bound("dateTo", date_to)
    if lower and upper and lower > upper:
        raise _query_error("dateTo", "dateTo must not be before dateFrom", date_to)

    return ListQuery(
        page=page,
        limit=limit,
        search=search.strip() if search and search.strip() else None,
        tags=parse_tags(tags),
        date_from=lower,
        date_to=upper,
        sort_by=SORT_FIELDS[sort_by],
        descending=sort_order == "desc",
    )


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=UpdatePage,
    summary="List Updates",
    description=(
        "List updates with optional filters and pagination.\n\n"
        "Query parameters:\n"
        "- page: page number (>=1, default 1)\n"
        "- limit: page size (1..100, default 10)\n"
        "- search: whitespace-separated terms matched against title/description\n"
        "- tags: comma-separated tags; records carrying any of them match\n"
        "- dateFrom / dateTo: inclusive date range (ISO8601)\n"
        "- sortBy: date, time, title, priority, status, createdAt, updatedAt\n"
        "- sortOrder: asc or desc (default desc)"
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        400: {"description": "Invalid query parameters"},
    },
)
def list_updates(
    query: ListQuery = Depends(list_query_params),
    repo: Repository = Depends(get_repository),
) -> UpdatePage:
    items, total = repo.list(query)
    envelope = pagination_envelope(
        items=[UpdateOut(**it) for it in items],  # type: ignore[arg-type]
        total=total,
        limit=query.limit,
        page=query.page,
    )
    return UpdatePage(**envelope)


# PUBLIC_INTERFACE
@router.get(
    "/stats",
    response_model=UpdateStats,
    summary="Update Statistics",
    description=(
        "Totals computed on every request: number of updates, updates created in the "
        "last 7 days, distinct dates, and tag frequencies (most used first)."
    ),
)
def get_stats(repo: Repository = Depends(get_repository)) -> UpdateStats:
    since = repo.now() - RECENT_WINDOW
    return UpdateStats(
        total_updates=repo.count(),
        recent_updates=repo.count(created_since=since),
        unique_days=len(repo.distinct_dates()),
        tag_stats=[TagCount(tag=tag, count=n) for tag, n in repo.tag_counts()],
    )


# PUBLIC_INTERFACE
@router.get(
    "/{update_id}",
    response_model=UpdateOut,
    summary="Get Update",
    responses={200: {"description": "Update found"}, **_NOT_FOUND},
)
def get_update(update_id: str, repo: Repository = Depends(get_repository)) -> UpdateOut:
    """
    Retrieve a single update by its ID.
    """
    item = repo.get(update_id)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Update not found")
    return UpdateOut(**item)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.post(
    "",
    response_model=UpdateOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Update",
    responses={
        201: {"description": "Update created successfully"},
        400: {"description": "Validation failed"},
    },
)
def create_update(payload: UpdatePayload, repo: Repository = Depends(get_repository)) -> UpdateOut:
    created = repo.create(payload)
    logger.info("Created update %s", created["id"])
    return UpdateOut(**created)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.put(
    "/{update_id}",
    response_model=UpdateOut,
    summary="Update Update",
    description=(
        "Validate the body with the same rules as create, then write it. title, description "
        "and time are always replaced; tags, date, priority, status and userId only when sent."
    ),
    responses={
        200: {"description": "Update modified"},
        400: {"description": "Validation failed"},
        **_NOT_FOUND,
    },
)
def update_update(
    update_id: str, payload: UpdatePayload, repo: Repository = Depends(get_repository)
) -> UpdateOut:
    updated = repo.update(update_id, payload)
    if not updated:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Update not found")
    logger.info("Modified update %s", update_id)
    return UpdateOut(**updated)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.delete(
    "/{update_id}",
    response_model=MessageOut,
    summary="Delete Update",
    responses={200: {"description": "Update deleted"}, **_NOT_FOUND},
)
def delete_update(update_id: str, repo: Repository = Depends(get_repository)) -> MessageOut:
    """
    Hard-delete an update. Returns 404 if it does not exist.
    """
    if not repo.delete(update_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Update not found")
    logger.info("Deleted update %s", update_id)
    return MessageOut(message="Update deleted successfully")
