from django.contrib import admin

from .models import User

PRESENCE_FIELDS = ('is_online', 'last_active')


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ['email', 'name', 'role', 'subscription_plan', 'is_online', 'last_active']
    list_filter = ['role', 'is_online', 'subscription_plan', 'is_staff']
    search_fields = ['email', 'name']
    ordering = ['-last_active']
    # Presence fields are written by the presence service only.
    readonly_fields = ['password', 'is_online', 'last_active', 'date_joined', 'updated_at', 'last_login']
    fieldsets = (
        (None, {'fields': ('email', 'password')}),
        ('Profile', {'fields': ('name', 'role', 'subscription_plan')}),
        ('Presence', {'fields': PRESENCE_FIELDS}),
        ('Permissions', {'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions')}),
        ('Dates', {'fields': ('last_login', 'date_joined', 'updated_at')}),
    )
    filter_horizontal = ['groups', 'user_permissions']

    def save_model(self, request, obj, form, change):
        if not change:
            super().save_model(request, obj, form, change)
            return
        # Many-to-many fields are saved separately by save_related().
        fields = [
            f.name for f in obj._meta.concrete_fields
            if not f.primary_key and f.name not in PRESENCE_FIELDS
        ]
        obj.save(update_fields=fields)
