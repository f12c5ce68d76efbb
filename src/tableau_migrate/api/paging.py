"""Paged access to REST list endpoints."""

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, Generic, List, TypeVar

from loguru import logger

from .exceptions import TableauAPIError
from .results import PagedResult

T = TypeVar('T')


class PageFetchError(TableauAPIError):
    """A page could not be fetched while iterating a pager."""

    def __init__(self, page_number: int, errors: List[Exception]):
        first = errors[0] if errors else None
        super().__init__(
            f'Failed to fetch page {page_number}: {first}',
            status_code=getattr(first, 'status_code', None),
        )
        self.page_number = page_number
        self.errors = errors


class ApiPageAccessor(ABC, Generic[T]):
    """Anything that can fetch one page of a list endpoint."""

    @abstractmethod
    async def get_page(self, page_number: int, page_size: int) -> PagedResult[T]:
        """Fetch one page; ``page_number`` starts at 1."""


class ApiListPager(Generic[T]):
    """Lazy, forward-only sequence over an :class:`ApiPageAccessor`.

    Every iteration starts again at page 1 and fetches pages strictly in
    order; nothing is cached between iterations.
    """

    def __init__(self, accessor: ApiPageAccessor[T], page_size: int):
        if page_size <= 0:
            raise ValueError('Page size must be positive')
        self.accessor = accessor
        self.page_size = page_size

    async def pages(self) -> AsyncIterator[PagedResult[T]]:
        page_number = 1
        while True:
            result = await self.accessor.get_page(page_number, self.page_size)
            if not result.success:
                raise PageFetchError(page_number, result.errors)

            yield result

            fetched = page_number * self.page_size
            if fetched >= result.total_count or result.received_count == 0:
                break
            page_number += 1

    async def items(self) -> AsyncIterator[T]:
        async for page in self.pages():
            for item in page.items:
                yield item

    def __aiter__(self) -> AsyncIterator[T]:
        return self.items()

    async def to_list(self) -> List[T]:
        return [item async for item in self.items()]


def pagination_params(page_number: int, page_size: int) -> Dict[str, Any]:
    """Query parameters selecting a page."""
    return {'pageNumber': page_number, 'pageSize': page_size}


def total_available(data: Dict[str, Any]) -> int:
    """Total item count from a REST list response's pagination block."""
    pagination = (data or {}).get('pagination') or {}
    try:
        return int(pagination.get('totalAvailable', 0))
    except (TypeError, ValueError):
        logger.warning(f'Invalid pagination block: {pagination}')
        return 0
