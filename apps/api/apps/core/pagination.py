"""
Generic pagination/sort contract shared by every list endpoint.

Request: (page, size, order_by, ascending, filter)
Response envelope: (content, total_elements, total_pages, page_index, page_size)

Page indices are zero-based. A page beyond the last one is not an error:
it comes back with empty content and the real total_elements.
"""
import math
from dataclasses import dataclass, field, replace
from typing import Any, Callable, List, Optional

from rest_framework.pagination import BasePagination
from rest_framework.response import Response

from apps.core import conf
from apps.core.exceptions import ValidationError


TRUE_VALUES = {'true', '1', 'yes', 'on'}
FALSE_VALUES = {'false', '0', 'no', 'off'}


def _parse_int(value, name):
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Query parameter "{name}" must be an integer')


def parse_bool_param(value, name):
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ValidationError(f'Query parameter "{name}" must be true or false')


@dataclass(frozen=True)
class PageRequest:
    """Validated listing request. Build it through `of()` or `from_query_params()`."""
    page: int = 0
    size: int = 10
    order_by: Optional[str] = None
    ascending: bool = True
    filter: Optional[str] = None

    @classmethod
    def of(cls, page=0, size=None, order_by=None, ascending=True, filter=None):
        """
        Validate and normalize listing parameters.

        - page < 0 or size < 1 -> ValidationError
        - size above MEDREC_MAX_PAGE_SIZE is clamped to the cap
        - blank filter/order_by become None
        """
        if size is None:
            size = conf.default_page_size()
        if page < 0:
            raise ValidationError(f'Page index must not be negative (got {page})')
        if size < 1:
            raise ValidationError(f'Page size must be at least 1 (got {size})')
        size = min(size, conf.max_page_size())

        if filter is not None:
            filter = filter.strip() or None
        if order_by is not None:
            order_by = order_by.strip() or None

        return cls(page=page, size=size, order_by=order_by, ascending=ascending, filter=filter)

    @classmethod
    def from_query_params(cls, params):
        """Build from request.query_params (page, size, order_by, ascending, filter)."""
        page = _parse_int(params.get('page', 0), 'page')
        size = params.get('size')
        size = _parse_int(size, 'size') if size not in (None, '') else None
        ascending = parse_bool_param(params.get('ascending', 'true'), 'ascending')
        return cls.of(
            page=page,
            size=size,
            order_by=params.get('order_by'),
            ascending=ascending,
            filter=params.get('filter'),
        )

    @property
    def offset(self):
        return self.page * self.size

    def with_default_order(self, order_by, ascending=True):
        """Use `order_by` unless the caller asked for a sort field."""
        if self.order_by:
            return self
        return replace(self, order_by=order_by, ascending=ascending)


@dataclass
class Page:
    """Page envelope returned by every listing."""
    content: List[Any] = field(default_factory=list)
    total_elements: int = 0
    page_index: int = 0
    page_size: int = 10

    @property
    def total_pages(self):
        if self.total_elements == 0:
            return 0
        return math.ceil(self.total_elements / self.page_size)

    def map(self, func: Callable[[Any], Any]) -> 'Page':
        return Page(
            content=[func(item) for item in self.content],
            total_elements=self.total_elements,
            page_index=self.page_index,
            page_size=self.page_size,
        )

    def to_dict(self):
        return {
            'content': self.content,
            'total_elements': self.total_elements,
            'total_pages': self.total_pages,
            'page_index': self.page_index,
            'page_size': self.page_size,
        }


def paginate(queryset, page_request: PageRequest) -> Page:
    """Slice an already filtered and ordered queryset into a Page."""
    total = queryset.count()
    offset = page_request.offset
    if offset >= total:
        content = []
    else:
        content = list(queryset[offset:offset + page_request.size])
    return Page(
        content=content,
        total_elements=total,
        page_index=page_request.page,
        page_size=page_request.size,
    )


class PageEnvelopePagination(BasePagination):
    """
    DRF pagination class for the listing contract.

    The view filters and orders the queryset; this class slices it and
    renders the page envelope. A page past the end is an empty page,
    never a 404.
    """

    def paginate_queryset(self, queryset, request, view=None):
        self.page = paginate(queryset, PageRequest.from_query_params(request.query_params))
        return self.page.content

    def get_paginated_response(self, data):
        envelope = self.page.to_dict()
        envelope['content'] = data
        return Response(envelope)

    def get_paginated_response_schema(self, schema):
        return {
            'type': 'object',
            'required': ['content', 'total_elements', 'total_pages', 'page_index', 'page_size'],
            'properties': {
                'content': schema,
                'total_elements': {'type': 'integer', 'example': 23},
                'total_pages': {'type': 'integer', 'example': 3},
                'page_index': {'type': 'integer', 'example': 0},
                'page_size': {'type': 'integer', 'example': 10},
            },
        }

    def get_schema_operation_parameters(self, view):
        def param(name, schema, description):
            return {'name': name, 'required': False, 'in': 'query', 'description': description, 'schema': schema}

        return [
            param('page', {'type': 'integer', 'minimum': 0}, 'Zero-based page index'),
            param('size', {'type': 'integer', 'minimum': 1}, 'Page size, capped at the configured maximum'),
            param('order_by', {'type': 'string'}, 'Sort field'),
            param('ascending', {'type': 'boolean'}, 'Sort direction'),
            param('filter', {'type': 'string'}, 'Case-insensitive substring matched against the search fields'),
        ]
