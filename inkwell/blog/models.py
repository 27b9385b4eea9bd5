from django.conf import settings
from django.db import models
from django.utils.text import slugify


EXCERPT_LENGTH = 150


class Blog(models.Model):
    """A blog post written by a customer (or admin)"""
    STATUS_DRAFT = 'draft'
    STATUS_PUBLISHED = 'published'
    STATUSES = [
        (STATUS_DRAFT, 'Draft'),
        (STATUS_PUBLISHED, 'Published'),
    ]

    title = models.CharField(max_length=200)
    slug = models.SlugField(max_length=220, unique=True, blank=True)
    content = models.TextField()
    excerpt = models.CharField(max_length=300, blank=True)
    author = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='blogs')
    status = models.CharField(max_length=10, choices=STATUSES, default=STATUS_DRAFT)
    categories = models.JSONField(default=list, blank=True)
    tags = models.JSONField(default=list, blank=True)
    featured_image = models.URLField(blank=True)
    is_featured = models.BooleanField(default=False)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['author', '-created_at'], name='blog_blog_author__9d1c4e_idx'),
            models.Index(fields=['status', '-created_at'], name='blog_blog_status_5b8e21_idx'),
        ]

    def __str__(self):
        return f"{self.author.name}: {self.title[:50]}"

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = self._unique_slug(slugify(self.title) or 'post')
        if not self.excerpt:
            self.excerpt = self.content[:EXCERPT_LENGTH].strip()
            if len(self.content) > EXCERPT_LENGTH:
                self.excerpt += '...'
        super().save(*args, **kwargs)

    def _unique_slug(self, base):
        """Append -1, -2, ... until the slug is free"""
        slug = base
        counter = 1
        while Blog.objects.filter(slug=slug).exclude(pk=self.pk).exists():
            slug = f"{base}-{counter}"
            counter += 1
        return slug
