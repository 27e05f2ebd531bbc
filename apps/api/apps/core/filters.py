"""
Filter predicate builder.

Turns a PageRequest plus a per-entity ListingSpec into a QueryDescriptor:
a Q predicate (case-insensitive substring match of the filter token
against the entity's default search fields), an ordering and the page
window. Pure: no database access happens here.
"""
from dataclasses import dataclass, field
from typing import Dict, Tuple

from django.db.models import Q

from apps.core.exceptions import InvalidSortField
from apps.core.pagination import Page, PageRequest, paginate


@dataclass(frozen=True)
class ListingSpec:
    """
    Listing rules for one entity.

    search_fields: ORM lookups matched with icontains (OR-ed together)
    sort_fields: API sort name -> tuple of ORM paths
    default_sort: API sort name used when the request has none
    """
    search_fields: Tuple[str, ...]
    sort_fields: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    default_sort: str = 'created_at'
    default_ascending: bool = True


@dataclass(frozen=True)
class QueryDescriptor:
    predicate: Q
    ordering: Tuple[str, ...]
    page_request: PageRequest


def build_predicate(spec: ListingSpec, token):
    """Null/blank token matches everything."""
    if token is None or not token.strip():
        return Q()
    token = token.strip()
    predicate = Q()
    for lookup in spec.search_fields:
        predicate |= Q(**{f'{lookup}__icontains': token})
    return predicate


def build_ordering(spec: ListingSpec, order_by, ascending):
    if order_by not in spec.sort_fields:
        allowed = ', '.join(sorted(spec.sort_fields))
        raise InvalidSortField(f'Cannot sort by "{order_by}". Allowed: {allowed}')
    prefix = '' if ascending else '-'
    paths = [f'{prefix}{path}' for path in spec.sort_fields[order_by]]
    # Stable tie-breaker so pages never overlap
    if 'id' not in spec.sort_fields[order_by]:
        paths.append('id')
    return tuple(paths)


def build_query(spec: ListingSpec, page_request: PageRequest) -> QueryDescriptor:
    page_request = page_request.with_default_order(spec.default_sort, spec.default_ascending)
    return QueryDescriptor(
        predicate=build_predicate(spec, page_request.filter),
        ordering=build_ordering(spec, page_request.order_by, page_request.ascending),
        page_request=page_request,
    )


def apply_filter(queryset, descriptor: QueryDescriptor):
    """Filtered and ordered queryset, not yet sliced."""
    queryset = queryset.filter(descriptor.predicate).order_by(*descriptor.ordering)
    # OR-ed joins across relations can duplicate rows
    if len(descriptor.predicate):
        queryset = queryset.distinct()
    return queryset


def apply_query(queryset, descriptor: QueryDescriptor) -> Page:
    return paginate(apply_filter(queryset, descriptor), descriptor.page_request)
