from django.contrib import admin
from .models import Finding, CorrectiveActionPlan, CAPMilestone


class CAPMilestoneInline(admin.TabularInline):
    model = CAPMilestone
    extra = 0
    fields = ['title_en', 'target_date', 'status', 'completed_at', 'sort_order']
    readonly_fields = ['completed_at']


@admin.register(Finding)
class FindingAdmin(admin.ModelAdmin):
    list_display = ['reference_number', 'review', 'finding_type', 'severity', 'status', 'cap_required', 'target_close_date']
    list_filter = ['finding_type', 'severity', 'status', 'cap_required']
    search_fields = ['reference_number', 'title_en', 'title_fr']
    readonly_fields = ['created_at', 'updated_at', 'closed_at']


@admin.register(CorrectiveActionPlan)
class CorrectiveActionPlanAdmin(admin.ModelAdmin):
    list_display = ['finding', 'status', 'responsible_person', 'due_date', 'submitted_at', 'verified_at']
    list_filter = ['status']
    search_fields = ['finding__reference_number', 'responsible_person']
    readonly_fields = ['created_at', 'updated_at', 'submitted_at', 'accepted_at', 'rejected_at', 'completed_at', 'verified_at', 'closed_at']
    inlines = [CAPMilestoneInline]
