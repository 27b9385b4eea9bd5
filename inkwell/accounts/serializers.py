from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.tokens import RefreshToken


User = get_user_model()


def tokens_for_user(user):
    refresh = RefreshToken.for_user(user)
    return {'refresh': str(refresh), 'access': str(refresh.access_token)}


class UserSerializer(serializers.ModelSerializer):
    """Serializer for User model"""
    class Meta:
        model = User
        fields = [
            'id', 'name', 'email', 'role', 'subscription_plan',
            'is_online', 'last_active', 'date_joined', 'updated_at'
        ]
        read_only_fields = fields


class UserRegistrationSerializer(serializers.ModelSerializer):
    """Serializer for user registration"""
    name = serializers.CharField(min_length=2, max_length=50, trim_whitespace=True)
    password = serializers.CharField(write_only=True, min_length=6)
    role = serializers.ChoiceField(choices=User.ROLES, default=User.ROLE_CUSTOMER)

    class Meta:
        model = User
        fields = ['name', 'email', 'password', 'role']

    def validate_email(self, value):
        value = value.lower()
        if User.objects.filter(email=value).exists():
            raise serializers.ValidationError("User already exists with this email")
        return value

    def create(self, validated_data):
        password = validated_data.pop('password')
        return User.objects.create_user(password=password, **validated_data)


class LoginSerializer(TokenObtainPairSerializer):
    """
    Email/password login.

    Returns the SimpleJWT pair plus the user record. Login does not touch the
    presence fields: a user becomes online when their first socket connects.
    """

    def validate(self, attrs):
        attrs[self.username_field] = attrs.get(self.username_field, '').lower()
        data = super().validate(attrs)
        data['user'] = UserSerializer(self.user).data
        return data


class ProfileUpdateSerializer(serializers.ModelSerializer):
    """Serializer for updating profile information"""
    name = serializers.CharField(min_length=2, max_length=50, required=False)
    subscription_plan = serializers.ChoiceField(choices=User.SUBSCRIPTION_PLANS, required=False)

    class Meta:
        model = User
        fields = ['name', 'email', 'subscription_plan']

    def validate_email(self, value):
        value = value.lower()
        exists = User.objects.filter(email=value).exclude(pk=self.instance.pk).exists()
        if exists:
            raise serializers.ValidationError("Email is already in use")
        return value

    def update(self, instance, validated_data):
        # request.user was loaded at authentication time; a full save would
        # write back stale presence fields.
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
        instance.save(update_fields=[*validated_data, 'updated_at'])
        return instance


class PasswordChangeSerializer(serializers.Serializer):
    """Serializer for password change"""
    current_password = serializers.CharField(required=True)
    new_password = serializers.CharField(required=True, min_length=6)

    def validate_current_password(self, value):
        user = self.context['request'].user
        if not user.check_password(value):
            raise serializers.ValidationError("Current password is incorrect")
        return value
