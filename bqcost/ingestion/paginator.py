"""
Cursor-based listing with a hard ceiling on the number of results.
"""

import logging
from typing import Callable, List, Optional, Set, TypeVar

from bqcost.bigquery.models import Page
from bqcost.ingestion.caller import ApiCaller
from bqcost.ingestion.context import RunContext
from bqcost.ingestion.exceptions import PaginationError, ResourceLimitError
from bqcost.logging_config import get_logger

T = TypeVar("T")

# Consecutive empty pages that still carry a next token before giving up.
MAX_EMPTY_PAGES = 20


class Paginator:
    """
    Walks every page of a listing and collects the items in order.

    `limit` is checked after each page against the accumulated list,
    which may be shared between several list_all() calls (tables are
    collected across all datasets of a project). Going over the limit
    raises ResourceLimitError and nothing is returned.

    A listing that hands back a token it already returned, or keeps
    returning empty pages with a next token, raises PaginationError.
    """

    def __init__(
        self,
        kind: str,
        limit: int,
        caller: ApiCaller,
        project_id: str,
        logger: Optional[logging.Logger] = None,
        max_empty_pages: int = MAX_EMPTY_PAGES,
    ):
        self.kind = kind
        self.limit = limit
        self.caller = caller
        self.project_id = project_id
        self.max_empty_pages = max_empty_pages
        self._logger = logger or get_logger(__name__)

    def list_all(
        self,
        fetch_page: Callable[[str], Page[T]],
        ctx: Optional[RunContext] = None,
        into: Optional[List[T]] = None,
    ) -> List[T]:
        """Fetch pages starting from an empty token until no next token is returned.

        Args:
            fetch_page: Called with the page token; returns one Page.
            ctx: Run context for cancellation.
            into: Existing list to append to (and count against `limit`).

        Returns:
            The accumulated list (`into` itself when given).
        """
        items: List[T] = into if into is not None else []
        token = ""
        seen_tokens: Set[str] = set()
        pages = 0
        empty_pages = 0
        while True:
            page = self.caller.call(fetch_page, token, ctx=ctx)
            pages += 1
            items.extend(page.items)
            if len(items) > self.limit:
                raise ResourceLimitError(self.kind, self.limit, self.project_id)
            token = page.next_page_token or ""
            if not token:
                break
            if token in seen_tokens:
                raise PaginationError(
                    f"Listing {self.kind} for {self.project_id} repeated page token {token!r}"
                )
            seen_tokens.add(token)
            empty_pages = 0 if page.items else empty_pages + 1
            if empty_pages > self.max_empty_pages:
                raise PaginationError(
                    f"Listing {self.kind} for {self.project_id} returned "
                    f"{empty_pages} empty pages in a row"
                )
        self._logger.debug(
            f"Listed {len(items)} {self.kind} for {self.project_id} in {pages} page(s)"
        )
        return items
