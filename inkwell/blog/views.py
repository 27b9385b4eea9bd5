from django.db.models import Q
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from accounts.permissions import HasKnownRole, IsAdmin
from core.pagination import StandardResultsSetPagination

from .analytics import blog_analytics
from .models import Blog
from .permissions import IsAuthorOrAdmin
from .serializers import BlogSerializer, BlogStatusSerializer


SORT_FIELDS = {'created_at', '-created_at', 'updated_at', '-updated_at', 'title', '-title'}


class BlogViewSet(viewsets.ModelViewSet):
    """ViewSet for Blog management"""
    serializer_class = BlogSerializer
    pagination_class = StandardResultsSetPagination

    def get_queryset(self):
        return Blog.objects.select_related('author')

    def get_permissions(self):
        if self.action in ['list', 'retrieve', 'search', 'by_author']:
            permission_classes = [permissions.AllowAny]
        elif self.action == 'analytics':
            permission_classes = [permissions.IsAuthenticated, IsAdmin]
        else:
            permission_classes = [permissions.IsAuthenticated, HasKnownRole, IsAuthorOrAdmin]
        return [permission() for permission in permission_classes]

    def list(self, request, *args, **kwargs):
        """
        Filters: status, category, tag, author, featured=true.
        Sort: ?sort=-created_at (default), created_at, updated_at, title.
        """
        params = request.query_params
        blogs = self.get_queryset()

        if params.get('status'):
            blogs = blogs.filter(status=params['status'])
        if params.get('category'):
            # JSON list stored as text: match the quoted element.
            blogs = blogs.filter(categories__icontains=f'"{params["category"]}"')
        if params.get('tag'):
            blogs = blogs.filter(tags__icontains=f'"{params["tag"]}"')
        if params.get('author', '').isdigit():
            blogs = blogs.filter(author_id=params['author'])
        if params.get('featured') == 'true':
            blogs = blogs.filter(is_featured=True)

        sort = params.get('sort', '-created_at').replace('createdAt', 'created_at').replace('updatedAt', 'updated_at')
        blogs = blogs.order_by(sort if sort in SORT_FIELDS else '-created_at')

        return self._paginated(blogs)

    def perform_create(self, serializer):
        serializer.save(author=self.request.user)

    def update(self, request, *args, **kwargs):
        # Fields left out of a PUT keep their current values.
        kwargs['partial'] = True
        return super().update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        blog = self.get_object()
        blog.delete()
        return Response({'success': True, 'message': 'Blog deleted successfully'})

    @action(detail=True, methods=['put', 'patch'], url_path='status')
    def set_status(self, request, pk=None):
        """Change only the publication status"""
        blog = self.get_object()
        serializer = BlogStatusSerializer(blog, data=request.data)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(BlogSerializer(blog, context={'request': request}).data)

    @action(detail=False, methods=['get'])
    def search(self, request):
        """Search title, content and author name/email"""
        params = request.query_params
        blogs = self.get_queryset()

        term = params.get('search', '').strip()
        if term:
            blogs = blogs.filter(
                Q(title__icontains=term)
                | Q(content__icontains=term)
                | Q(author__name__icontains=term)
                | Q(author__email__icontains=term)
            )
        if params.get('authorName'):
            blogs = blogs.filter(author__name__icontains=params['authorName'])
        if params.get('authorEmail'):
            blogs = blogs.filter(author__email__icontains=params['authorEmail'])
        if params.get('status'):
            blogs = blogs.filter(status=params['status'])

        return self._paginated(blogs.order_by('-created_at'))

    @action(detail=False, methods=['get'], url_path=r'author/(?P<author_id>\d+)')
    def by_author(self, request, author_id=None):
        """Blogs written by one author"""
        blogs = self.get_queryset().filter(author_id=author_id)
        if request.query_params.get('status'):
            blogs = blogs.filter(status=request.query_params['status'])
        return self._paginated(blogs.order_by('-created_at'))

    @action(detail=False, methods=['get'])
    def analytics(self, request):
        """Dashboard statistics (admin only)"""
        return Response({'success': True, 'data': blog_analytics()}, status=status.HTTP_200_OK)

    def _paginated(self, blogs):
        page = self.paginate_queryset(blogs)
        if page is not None:
            serializer = self.get_serializer(page, many=True)
            return self.get_paginated_response(serializer.data)

        serializer = self.get_serializer(blogs, many=True)
        return Response(serializer.data)
