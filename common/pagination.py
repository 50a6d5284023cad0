from rest_framework.pagination import PageNumberPagination


class StandardResultsSetPagination(PageNumberPagination):
    """Page-number pagination shared by inventory and order listings.

    Stock screens page through large device lists, so clients may ask for
    bigger pages with `?page_size=`, capped at `max_page_size`.
    """

    page_size = 50
    page_size_query_param = "page_size"
    max_page_size = 500
