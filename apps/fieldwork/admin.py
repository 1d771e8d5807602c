from django.contrib import admin
from .models import SyncQueueEntry, SyncCheckpoint


@admin.register(SyncQueueEntry)
class SyncQueueEntryAdmin(admin.ModelAdmin):
    list_display = ['entity_type', 'action', 'entity_id', 'user', 'review', 'sync_status', 'retry_count', 'created_at']
    list_filter = ['sync_status', 'entity_type', 'action']
    search_fields = ['entity_id', 'review__reference_number', 'user__email']
    readonly_fields = ['payload', 'server_data', 'error', 'last_attempt', 'created_at', 'updated_at']


@admin.register(SyncCheckpoint)
class SyncCheckpointAdmin(admin.ModelAdmin):
    list_display = ['user', 'last_sync_at', 'synced_count']
