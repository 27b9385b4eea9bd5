"""Aggregate blog statistics for the admin dashboard."""

from datetime import timedelta

from django.db.models import Count, Q
from django.db.models.functions import TruncDate, TruncMonth
from django.utils import timezone

from .models import Blog


TOP_AUTHORS_LIMIT = 5

_published = Count('id', filter=Q(status=Blog.STATUS_PUBLISHED))
_draft = Count('id', filter=Q(status=Blog.STATUS_DRAFT))


def blog_analytics(now=None):
    now = now or timezone.now()
    blogs = Blog.objects.all()
    today = timezone.localtime(now).replace(hour=0, minute=0, second=0, microsecond=0)

    overview = {
        'totalBlogs': blogs.count(),
        'draftBlogs': blogs.filter(status=Blog.STATUS_DRAFT).count(),
        'publishedBlogs': blogs.filter(status=Blog.STATUS_PUBLISHED).count(),
        'recentBlogs': blogs.filter(created_at__gte=now - timedelta(days=30)).count(),
        'todayBlogs': blogs.filter(created_at__gte=today, created_at__lt=today + timedelta(days=1)).count(),
    }

    monthly = (
        blogs.filter(created_at__gte=now - timedelta(days=183))
        .annotate(month=TruncMonth('created_at'))
        .values('month')
        .annotate(total=Count('id'), published=_published, draft=_draft)
        .order_by('month')
    )
    daily = (
        blogs.filter(created_at__gte=now - timedelta(days=7))
        .annotate(day=TruncDate('created_at'))
        .values('day')
        .annotate(total=Count('id'), published=_published)
        .order_by('day')
    )
    top_authors = (
        blogs.values('author_id', 'author__name', 'author__email')
        .annotate(blogCount=Count('id'), publishedCount=_published)
        .order_by('-blogCount', 'author_id')[:TOP_AUTHORS_LIMIT]
    )

    return {
        'overview': overview,
        'monthlyStats': [
            {
                'year': row['month'].year,
                'month': row['month'].month,
                'total': row['total'],
                'published': row['published'],
                'draft': row['draft'],
            }
            for row in monthly
        ],
        'dailyStats': [
            {'date': row['day'].isoformat(), 'total': row['total'], 'published': row['published']}
            for row in daily
        ],
        'topAuthors': [
            {
                'authorId': row['author_id'],
                'authorName': row['author__name'],
                'authorEmail': row['author__email'],
                'blogCount': row['blogCount'],
                'publishedCount': row['publishedCount'],
            }
            for row in top_authors
        ],
    }
