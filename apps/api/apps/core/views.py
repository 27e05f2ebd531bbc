"""
View helpers shared by list endpoints.
"""
from apps.core.observability.correlation import bind_user
from apps.core.pagination import PageRequest, parse_bool_param


class CorrelatedViewMixin:
    """Binds the authenticated caller to the log correlation context."""

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        bind_user(request.user)


class PageRequestMixin:
    """
    Reads the listing contract (page, size, order_by, ascending, filter)
    and boolean flags from query params. Envelope rendering is left to
    PageEnvelopePagination.
    """

    def get_page_request(self):
        return PageRequest.from_query_params(self.request.query_params)

    def get_flag(self, name, default=False):
        value = self.request.query_params.get(name)
        if value in (None, ''):
            return default
        return parse_bool_param(value, name)

    def get_include_deleted(self):
        return self.get_flag('include_deleted')
