"""Page/limit pagination for list endpoints.

Response envelope::

    {"data": [...], "meta": {"page", "limit", "total", "totalPages",
                             "hasNextPage", "hasPreviousPage"}}
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from flask import current_app, request

from specforge.core.exceptions import BadRequestError

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
DEFAULT_MAX_LIMIT = 100


@dataclass(frozen=True)
class PageParams:
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def _max_limit() -> int:
    try:
        return int(current_app.config.get("PAGINATION_MAX_LIMIT", DEFAULT_MAX_LIMIT))
    except RuntimeError:
        return DEFAULT_MAX_LIMIT


def parse_page_params(page=None, limit=None, max_limit: int | None = None) -> PageParams:
    """Validate raw page/limit values (strings or ints); None means default.

    Raises:
        BadRequestError: page < 1, limit outside 1..max_limit, or non-integer.
    """
    max_limit = max_limit or _max_limit()
    try:
        page_val = DEFAULT_PAGE if page in (None, "") else int(page)
        limit_val = DEFAULT_LIMIT if limit in (None, "") else int(limit)
    except (TypeError, ValueError):
        raise BadRequestError("page and limit must be integers")
    if page_val < 1:
        raise BadRequestError("page must be >= 1")
    if limit_val < 1 or limit_val > max_limit:
        raise BadRequestError(f"limit must be between 1 and {max_limit}")
    return PageParams(page=page_val, limit=limit_val)


def page_params_from_request() -> PageParams:
    return parse_page_params(request.args.get("page"), request.args.get("limit"))


def build_page(items: list, total: int, params: PageParams) -> dict:
    total_pages = math.ceil(total / params.limit) if total else 0
    return {
        "data": items,
        "meta": {
            "page": params.page,
            "limit": params.limit,
            "total": total,
            "totalPages": total_pages,
            "hasNextPage": params.page < total_pages,
            "hasPreviousPage": params.page > 1,
        },
    }
