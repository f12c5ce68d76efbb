"""Tests for the paged list iteration."""

import pytest

from tableau_migrate.api.exceptions import TableauAPIError
from tableau_migrate.api.paging import (
    ApiListPager,
    ApiPageAccessor,
    PageFetchError,
    total_available,
)
from tableau_migrate.api.results import PagedResult


class ListAccessor(ApiPageAccessor):
    """Serves pages from an in-memory list."""

    def __init__(self, items, fail_on_page=None, excluded=()):
        self.items = items
        self.fail_on_page = fail_on_page
        self.excluded = set(excluded)
        self.fetched = []

    async def get_page(self, page_number, page_size):
        self.fetched.append(page_number)
        if page_number == self.fail_on_page:
            return PagedResult.failed(TableauAPIError('boom', status_code=500))

        start = (page_number - 1) * page_size
        raw = self.items[start:start + page_size]
        kept = [i for i in raw if i not in self.excluded]
        return PagedResult.page(
            kept, page_number, page_size, len(self.items), received_count=len(raw)
        )


class TestApiListPager:
    """Test the lazy pager."""

    async def test_fetches_minimum_pages(self):
        accessor = ListAccessor(list(range(101)))
        pager = ApiListPager(accessor, 50)

        items = await pager.to_list()

        assert items == list(range(101))
        assert accessor.fetched == [1, 2, 3]

    async def test_exact_multiple_stops_without_extra_request(self):
        accessor = ListAccessor(list(range(100)))

        items = await ApiListPager(accessor, 50).to_list()

        assert len(items) == 100
        assert accessor.fetched == [1, 2]

    async def test_empty_list_single_request(self):
        accessor = ListAccessor([])

        assert await ApiListPager(accessor, 50).to_list() == []
        assert accessor.fetched == [1]

    async def test_excluded_items_do_not_end_iteration(self):
        """A page whose items were all excluded still advances to the next page."""
        accessor = ListAccessor(list(range(6)), excluded=[0, 1])

        items = await ApiListPager(accessor, 2).to_list()

        assert items == [2, 3, 4, 5]
        assert accessor.fetched == [1, 2, 3]

    async def test_lazy_iteration(self):
        accessor = ListAccessor(list(range(10)))
        pager = ApiListPager(accessor, 3)

        async for item in pager:
            if item == 1:
                break

        assert accessor.fetched == [1]

    async def test_each_iteration_restarts(self):
        accessor = ListAccessor(list(range(4)))
        pager = ApiListPager(accessor, 2)

        await pager.to_list()
        await pager.to_list()

        assert accessor.fetched == [1, 2, 1, 2]

    async def test_failed_page_raises(self):
        accessor = ListAccessor(list(range(10)), fail_on_page=2)

        with pytest.raises(PageFetchError) as exc_info:
            await ApiListPager(accessor, 3).to_list()

        assert exc_info.value.page_number == 2
        assert exc_info.value.status_code == 500

    def test_page_size_must_be_positive(self):
        with pytest.raises(ValueError):
            ApiListPager(ListAccessor([]), 0)

    def test_accessor_must_implement_get_page(self):
        class Incomplete(ApiPageAccessor):
            pass

        with pytest.raises(TypeError):
            Incomplete()


def test_total_available():
    assert total_available({'pagination': {'totalAvailable': '42'}}) == 42
    assert total_available({}) == 0
    assert total_available({'pagination': {'totalAvailable': 'x'}}) == 0
