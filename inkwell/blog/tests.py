"""
Tests for blog CRUD, permissions, listing filters, search and analytics.
"""

from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient

from blog.analytics import blog_analytics
from blog.models import Blog


User = get_user_model()


CONTENT = "A long enough body for a blog post about presence and sockets."


class BlogModelTest(TestCase):

    def setUp(self):
        self.author = User.objects.create_user(
            email='alice@example.com', password='secret123', name='Alice'
        )

    def test_slug_is_unique(self):
        first = Blog.objects.create(title='Hello World', content=CONTENT, author=self.author)
        second = Blog.objects.create(title='Hello World', content=CONTENT, author=self.author)
        self.assertEqual(first.slug, 'hello-world')
        self.assertEqual(second.slug, 'hello-world-1')

    def test_excerpt_generated_from_content(self):
        blog = Blog.objects.create(title='Long post', content='x' * 200, author=self.author)
        self.assertEqual(blog.excerpt, 'x' * 150 + '...')

        short = Blog.objects.create(title='Short post', content=CONTENT, author=self.author)
        self.assertEqual(short.excerpt, CONTENT)


class BlogAPITest(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.alice = User.objects.create_user(
            email='alice@example.com', password='secret123', name='Alice'
        )
        self.bob = User.objects.create_user(
            email='bob@example.com', password='secret123', name='Bob'
        )
        self.admin = User.objects.create_user(
            email='root@example.com', password='secret123', name='Root', role=User.ROLE_ADMIN
        )
        self.post = Blog.objects.create(
            title='Realtime presence',
            content=CONTENT,
            author=self.alice,
            status=Blog.STATUS_PUBLISHED,
            categories=['Tech'],
            tags=['websockets', 'django'],
            is_featured=True,
        )
        self.draft = Blog.objects.create(
            title='Gardening notes',
            content='Tomatoes need a lot of sun and water.',
            author=self.bob,
            categories=['Life'],
        )

    def _ids(self, response):
        return [item['id'] for item in response.data['results']]

    def test_create_requires_authentication(self):
        response = self.client.post('/api/blogs/', {'title': 'Hello there', 'content': CONTENT})
        self.assertEqual(response.status_code, 401)

    def test_create_sets_author(self):
        self.client.force_authenticate(user=self.bob)
        response = self.client.post('/api/blogs/', {
            'title': 'My first post',
            'content': CONTENT,
            'categories': 'Tech, News',
            'tags': ['intro'],
        }, format='json')

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data['author']['id'], self.bob.pk)
        self.assertEqual(response.data['categories'], ['Tech', 'News'])
        self.assertEqual(response.data['status'], 'draft')
        self.assertEqual(response.data['slug'], 'my-first-post')

    def test_create_validation(self):
        self.client.force_authenticate(user=self.bob)
        response = self.client.post('/api/blogs/', {
            'title': 'Hey',
            'content': 'short',
            'featured_image': 'ftp://example.com/a.png',
        }, format='json')

        self.assertEqual(response.status_code, 400)
        for field in ('title', 'content', 'featured_image'):
            self.assertIn(field, response.data)

    def test_list_is_public_and_paginated(self):
        response = self.client.get('/api/blogs/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['count'], 2)

        response = self.client.get('/api/blogs/', {'limit': 1})
        self.assertEqual(len(response.data['results']), 1)
        self.assertIsNotNone(response.data['next'])

    def test_list_filters(self):
        self.assertEqual(self._ids(self.client.get('/api/blogs/', {'status': 'published'})), [self.post.pk])
        self.assertEqual(self._ids(self.client.get('/api/blogs/', {'category': 'tech'})), [self.post.pk])
        self.assertEqual(self._ids(self.client.get('/api/blogs/', {'tag': 'django'})), [self.post.pk])
        self.assertEqual(self._ids(self.client.get('/api/blogs/', {'author': self.bob.pk})), [self.draft.pk])
        self.assertEqual(self._ids(self.client.get('/api/blogs/', {'featured': 'true'})), [self.post.pk])

    def test_list_sort(self):
        response = self.client.get('/api/blogs/', {'sort': 'title'})
        self.assertEqual(self._ids(response), [self.draft.pk, self.post.pk])

        # Unknown sort keys fall back to newest first.
        response = self.client.get('/api/blogs/', {'sort': 'author__password'})
        self.assertEqual(self._ids(response), [self.draft.pk, self.post.pk])

    def test_retrieve_is_public(self):
        response = self.client.get(f'/api/blogs/{self.post.pk}/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['author']['name'], 'Alice')

    def test_author_can_update(self):
        self.client.force_authenticate(user=self.alice)
        response = self.client.put(f'/api/blogs/{self.post.pk}/', {'title': 'Realtime presence, revised'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.post.refresh_from_db()
        self.assertEqual(self.post.title, 'Realtime presence, revised')
        self.assertEqual(self.post.content, CONTENT)

    def test_other_customer_cannot_update_or_delete(self):
        self.client.force_authenticate(user=self.bob)
        response = self.client.patch(f'/api/blogs/{self.post.pk}/', {'title': 'Hijacked title'}, format='json')
        self.assertEqual(response.status_code, 403)

        response = self.client.delete(f'/api/blogs/{self.post.pk}/')
        self.assertEqual(response.status_code, 403)
        self.assertTrue(Blog.objects.filter(pk=self.post.pk).exists())

    def test_admin_can_moderate(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.delete(f'/api/blogs/{self.draft.pk}/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {'success': True, 'message': 'Blog deleted successfully'})
        self.assertFalse(Blog.objects.filter(pk=self.draft.pk).exists())

    def test_set_status(self):
        self.client.force_authenticate(user=self.bob)
        response = self.client.put(f'/api/blogs/{self.draft.pk}/status/', {'status': 'published'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], 'published')

        response = self.client.put(f'/api/blogs/{self.draft.pk}/status/', {'status': 'archived'}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_set_status_by_other_user(self):
        self.client.force_authenticate(user=self.alice)
        response = self.client.put(f'/api/blogs/{self.draft.pk}/status/', {'status': 'published'}, format='json')
        self.assertEqual(response.status_code, 403)

    def test_search(self):
        self.assertEqual(self._ids(self.client.get('/api/blogs/search/', {'search': 'tomatoes'})), [self.draft.pk])
        self.assertEqual(self._ids(self.client.get('/api/blogs/search/', {'search': 'alice'})), [self.post.pk])
        self.assertEqual(
            self._ids(self.client.get('/api/blogs/search/', {'authorEmail': 'bob@'})), [self.draft.pk]
        )
        self.assertEqual(
            self._ids(self.client.get('/api/blogs/search/', {'authorName': 'ali', 'status': 'draft'})), []
        )

    def test_by_author(self):
        response = self.client.get(f'/api/blogs/author/{self.alice.pk}/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self._ids(response), [self.post.pk])

        response = self.client.get(f'/api/blogs/author/{self.alice.pk}/', {'status': 'draft'})
        self.assertEqual(self._ids(response), [])

    def test_analytics_admin_only(self):
        self.client.force_authenticate(user=self.alice)
        self.assertEqual(self.client.get('/api/blogs/analytics/').status_code, 403)

        self.client.force_authenticate(user=self.admin)
        response = self.client.get('/api/blogs/analytics/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['data']['overview']['totalBlogs'], 2)


class BlogAnalyticsTest(TestCase):

    def setUp(self):
        self.alice = User.objects.create_user(
            email='alice@example.com', password='secret123', name='Alice'
        )
        self.bob = User.objects.create_user(
            email='bob@example.com', password='secret123', name='Bob'
        )
        for i in range(3):
            Blog.objects.create(
                title=f'Alice post {i}', content=CONTENT, author=self.alice,
                status=Blog.STATUS_PUBLISHED if i else Blog.STATUS_DRAFT,
            )
        Blog.objects.create(title='Bob post', content=CONTENT, author=self.bob)

    def test_overview(self):
        overview = blog_analytics()['overview']
        self.assertEqual(overview['totalBlogs'], 4)
        self.assertEqual(overview['publishedBlogs'], 2)
        self.assertEqual(overview['draftBlogs'], 2)
        self.assertEqual(overview['recentBlogs'], 4)
        self.assertEqual(overview['todayBlogs'], 4)

    def test_monthly_and_daily(self):
        data = blog_analytics()
        self.assertEqual(sum(row['total'] for row in data['monthlyStats']), 4)
        self.assertEqual(sum(row['published'] for row in data['dailyStats']), 2)

    def test_top_authors(self):
        top = blog_analytics()['topAuthors']
        self.assertEqual(top[0]['authorName'], 'Alice')
        self.assertEqual(top[0]['blogCount'], 3)
        self.assertEqual(top[0]['publishedCount'], 2)
        self.assertEqual(top[1]['authorEmail'], 'bob@example.com')
