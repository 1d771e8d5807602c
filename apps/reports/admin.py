from django.contrib import admin
from .models import ReviewReport


@admin.register(ReviewReport)
class ReviewReportAdmin(admin.ModelAdmin):
    list_display = ['review', 'status', 'locale', 'version', 'generated_at', 'finalized_at', 'published_at']
    list_filter = ['status', 'locale']
    search_fields = ['review__reference_number']
    readonly_fields = [
        'content', 'version_history', 'file_url', 'file_name', 'generated_at', 'submitted_at',
        'finalized_at', 'published_at', 'created_at', 'updated_at',
    ]
