from rest_framework.pagination import PageNumberPagination


class StandardResultsSetPagination(PageNumberPagination):
    """Standard pagination for API results (`?page=2&limit=20`)"""
    page_size = 10
    page_size_query_param = 'limit'
    max_page_size = 100
