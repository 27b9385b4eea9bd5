import re

from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import Blog


User = get_user_model()


class CommaSeparatedListField(serializers.ListField):
    """Accepts either a JSON list or a comma-separated string."""
    child = serializers.CharField(max_length=50)

    def to_internal_value(self, data):
        if isinstance(data, str):
            data = [part.strip() for part in data.split(',')]
        data = [item for item in data if isinstance(item, str) and item.strip()]
        return super().to_internal_value(data)


class BlogAuthorSerializer(serializers.ModelSerializer):
    """Author summary embedded in blog responses"""
    class Meta:
        model = User
        fields = ['id', 'name', 'email', 'subscription_plan']
        read_only_fields = fields


class BlogSerializer(serializers.ModelSerializer):
    """Serializer for Blog model"""
    author = BlogAuthorSerializer(read_only=True)
    title = serializers.CharField(min_length=5, max_length=200)
    content = serializers.CharField(min_length=10)
    excerpt = serializers.CharField(max_length=300, required=False, allow_blank=True)
    categories = CommaSeparatedListField(required=False)
    tags = CommaSeparatedListField(required=False)
    featured_image = serializers.CharField(required=False, allow_blank=True)

    class Meta:
        model = Blog
        fields = [
            'id', 'title', 'slug', 'content', 'excerpt', 'author', 'status',
            'categories', 'tags', 'featured_image', 'is_featured',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'slug', 'author', 'created_at', 'updated_at']

    def validate_title(self, value):
        return value.strip()

    def validate_featured_image(self, value):
        value = value.strip()
        if value and not re.match(r'^https?://.+', value):
            raise serializers.ValidationError("Featured image must be a valid URL")
        return value


class BlogStatusSerializer(serializers.ModelSerializer):
    """Status-only update"""
    status = serializers.ChoiceField(choices=Blog.STATUSES)

    class Meta:
        model = Blog
        fields = ['status']
