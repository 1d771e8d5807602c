from django.contrib import admin
from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['type', 'user', 'priority', 'read_at', 'email_sent_at', 'created_at']
    list_filter = ['type', 'priority']
    search_fields = ['title_en', 'title_fr', 'entity_id']
