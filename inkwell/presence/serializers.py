from django.contrib.auth import get_user_model
from rest_framework import serializers


User = get_user_model()


class UserPresenceSerializer(serializers.ModelSerializer):
    """
    A user with their presence, in the same camelCase shape as the socket
    events (plus the admin-only listing fields).
    """
    userId = serializers.SerializerMethodField()
    isOnline = serializers.BooleanField(source='is_online', read_only=True)
    lastActive = serializers.DateTimeField(source='last_active', read_only=True)
    subscriptionPlan = serializers.CharField(source='subscription_plan', read_only=True)
    createdAt = serializers.DateTimeField(source='date_joined', read_only=True)
    updatedAt = serializers.DateTimeField(source='updated_at', read_only=True)

    class Meta:
        model = User
        fields = [
            'userId', 'id', 'name', 'email', 'isOnline', 'lastActive', 'role',
            'subscriptionPlan', 'createdAt', 'updatedAt'
        ]
        read_only_fields = fields

    def get_userId(self, obj):
        return str(obj.pk)
