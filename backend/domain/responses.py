"""
Response envelope helpers.

Success: { "success": true, "data": <payload>, "meta": {...} }
Error:   { "success": false, "error": { "code", "message", "details" } }
         (built by the exception handlers in main.py)
"""
from typing import Any


def success_response(data: Any, meta: dict[str, Any] | None = None) -> dict[str, Any]:
    """Wrap a payload; `meta` is omitted when empty."""
    response = {"success": True, "data": data}
    if meta:
        response["meta"] = meta
    return response


def paginated_response(
    items: list[Any],
    limit: int,
    offset: int = 0,
    total: int | None = None,
) -> dict[str, Any]:
    """
    Wrap one page of items.

    `total` is the size of the whole collection; when unknown the page
    length is used and hasMore is inferred from a full page.
    """
    if total is None:
        total = offset + len(items)
        has_more = len(items) == limit
    else:
        has_more = (offset + limit) < total

    return success_response(
        data=items,
        meta={"limit": limit, "offset": offset, "total": total, "hasMore": has_more},
    )
