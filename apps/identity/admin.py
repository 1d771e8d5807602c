from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from .models import User


@admin.register(User)
class ProgrammeUserAdmin(UserAdmin):
    list_display = ['username', 'email', 'role', 'org_id', 'locale', 'is_active']
    list_filter = ['role', 'locale', 'is_active']
    search_fields = ['username', 'email', 'first_name', 'last_name']
    fieldsets = UserAdmin.fieldsets + (
        ('Programme', {'fields': ('role', 'org_id', 'title', 'phone', 'locale', 'email_notifications')}),
    )
