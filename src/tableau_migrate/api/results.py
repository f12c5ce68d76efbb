"""Explicit success / failure results returned by API operations."""

from dataclasses import dataclass, field
from typing import Any, Generic, List, Optional, TypeVar

T = TypeVar('T')


@dataclass
class Result(Generic[T]):
    """Outcome of a fallible operation.

    A successful result carries a value, a failed one carries at least one
    error. Failures never hold a value.
    """

    success: bool
    value: Optional[T] = None
    errors: List[Exception] = field(default_factory=list)

    @classmethod
    def succeeded(cls, value: Any = None) -> 'Result':
        return cls(success=True, value=value)

    @classmethod
    def failed(cls, *errors: Exception) -> 'Result':
        if not errors:
            raise ValueError('A failed result requires at least one error')
        return cls(success=False, errors=list(errors))

    @property
    def error(self) -> Optional[Exception]:
        """The first error, if any."""
        return self.errors[0] if self.errors else None

    def cast_failure(self) -> 'Result':
        """Re-wrap this failure so it can be returned from another operation."""
        if self.success:
            raise ValueError('Cannot cast a successful result to a failure')
        return Result(success=False, errors=list(self.errors))

    def unwrap(self) -> T:
        """Return the value or raise the first error."""
        if not self.success:
            raise self.errors[0]
        return self.value

    def __bool__(self) -> bool:
        return self.success


@dataclass
class PagedResult(Result[List[T]]):
    """Result of fetching a single page of a REST list endpoint."""

    page_number: int = 1
    page_size: int = 0
    total_count: int = 0
    received_count: int = 0

    @classmethod
    def page(
        cls,
        items: List[Any],
        page_number: int,
        page_size: int,
        total_count: int,
        received_count: Optional[int] = None,
    ) -> 'PagedResult':
        """Build a page result.

        ``received_count`` is the number of items the server returned, which
        exceeds ``len(items)`` when some were excluded during conversion.
        """
        return cls(
            success=True,
            value=list(items),
            page_number=page_number,
            page_size=page_size,
            total_count=total_count,
            received_count=len(items) if received_count is None else received_count,
        )

    @classmethod
    def failed(cls, *errors: Exception) -> 'PagedResult':
        if not errors:
            raise ValueError('A failed result requires at least one error')
        return cls(success=False, errors=list(errors))

    @property
    def items(self) -> List[T]:
        return self.value or []
