from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.db import models
from django.utils import timezone


class UserManager(BaseUserManager):
    use_in_migrations = True

    def _create_user(self, email, password, **extra_fields):
        if not email:
            raise ValueError("The email address must be set")
        email = self.normalize_email(email).lower()
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)
        return self._create_user(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)
        extra_fields.setdefault("role", User.ROLE_ADMIN)
        return self._create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    A member of the platform: either a customer (author) or an admin (moderator).

    `is_online` and `last_active` are owned by the presence service; nothing
    else in the project writes them.
    """

    ROLE_CUSTOMER = "customer"
    ROLE_ADMIN = "admin"
    ROLES = [
        (ROLE_CUSTOMER, "Customer"),
        (ROLE_ADMIN, "Admin"),
    ]

    PLAN_BASIC = "Basic"
    PLAN_PREMIUM = "Premium"
    PLAN_ENTERPRISE = "Enterprise"
    SUBSCRIPTION_PLANS = [
        (PLAN_BASIC, "Basic"),
        (PLAN_PREMIUM, "Premium"),
        (PLAN_ENTERPRISE, "Enterprise"),
    ]

    name = models.CharField(max_length=50)
    email = models.EmailField(unique=True)
    role = models.CharField(max_length=10, choices=ROLES, default=ROLE_CUSTOMER)
    subscription_plan = models.CharField(
        max_length=20, choices=SUBSCRIPTION_PLANS, default=PLAN_BASIC
    )

    # Presence
    is_online = models.BooleanField(default=False)
    last_active = models.DateTimeField(null=True, blank=True)

    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    date_joined = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = "email"
    EMAIL_FIELD = "email"
    REQUIRED_FIELDS = ["name"]

    class Meta:
        ordering = ["-last_active"]
        indexes = [
            models.Index(fields=["role", "is_online"], name="accounts_us_role_7c5e0d_idx"),
            models.Index(fields=["-last_active"], name="accounts_us_last_ac_1f3b2a_idx"),
        ]

    def __str__(self):
        return f"{self.name} <{self.email}>"

    @property
    def is_admin(self) -> bool:
        return self.role == self.ROLE_ADMIN

    @property
    def is_customer(self) -> bool:
        return self.role == self.ROLE_CUSTOMER
