from __future__ import annotations

from typing import Any, Dict, Iterable, List, Sequence, Union

from .query import total_pages


# PUBLIC_INTERFACE
def pagination_envelope(
    items: Union[Sequence[Any], Iterable[Any]],
    total: int,
    limit: int,
    page: int,
) -> Dict[str, Any]:
    """
    Build the pagination envelope for the update list endpoint.

    Args:
        items: The list/iterable of items for the current page.
        total: Total number of items that match the query (ignoring pagination).
        limit: Page size used for the query.
        page: 1-based page number that was served.

    Returns:
        Dict with keys: updates, total_pages, current_page, total.
    """
    materialized: List[Any] = list(items) if not isinstance(items, list) else items
    return {
        "updates": materialized,
        "total_pages": total_pages(int(total), limit),
        "current_page": page,
        "total": int(total),
    }
