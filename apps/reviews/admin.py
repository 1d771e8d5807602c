from django.contrib import admin
from .models import Review, ReviewTeamMember, FieldworkChecklistItem


class ReviewTeamMemberInline(admin.TabularInline):
    model = ReviewTeamMember
    extra = 0
    fields = ['user', 'role', 'invitation_status', 'confirmed_at']
    readonly_fields = ['confirmed_at']


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ['reference_number', 'host_org_id', 'review_type', 'status', 'planned_start_date', 'planned_end_date']
    list_filter = ['status', 'review_type', 'location_type']
    search_fields = ['reference_number']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [ReviewTeamMemberInline]


@admin.register(FieldworkChecklistItem)
class FieldworkChecklistItemAdmin(admin.ModelAdmin):
    list_display = ['review', 'phase', 'item_code', 'is_completed', 'completed_at']
    list_filter = ['phase', 'is_completed']
    search_fields = ['item_code', 'review__reference_number']
