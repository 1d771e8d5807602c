from django.contrib import admin
from .models import ReviewerProfile, ReviewerExpertise, ReviewerLanguage, ReviewerAvailability, ReviewerCOI, COIOverride


class ReviewerExpertiseInline(admin.TabularInline):
    model = ReviewerExpertise
    extra = 0


class ReviewerLanguageInline(admin.TabularInline):
    model = ReviewerLanguage
    extra = 0


@admin.register(ReviewerProfile)
class ReviewerProfileAdmin(admin.ModelAdmin):
    list_display = ['user', 'selection_status', 'is_lead_qualified', 'is_available', 'reviews_completed']
    list_filter = ['selection_status', 'is_lead_qualified', 'is_available']
    search_fields = ['user__username', 'user__email', 'user__last_name']
    readonly_fields = ['created_at', 'updated_at']
    inlines = [ReviewerExpertiseInline, ReviewerLanguageInline]


@admin.register(ReviewerAvailability)
class ReviewerAvailabilityAdmin(admin.ModelAdmin):
    list_display = ['profile', 'availability_type', 'start_date', 'end_date']
    list_filter = ['availability_type']


@admin.register(ReviewerCOI)
class ReviewerCOIAdmin(admin.ModelAdmin):
    list_display = ['profile', 'org_id', 'coi_type', 'severity', 'is_active', 'is_auto_detected']
    list_filter = ['coi_type', 'severity', 'is_active']


@admin.register(COIOverride)
class COIOverrideAdmin(admin.ModelAdmin):
    list_display = ['profile', 'org_id', 'review', 'approved_by', 'approved_at', 'expires_at', 'is_revoked']
    list_filter = ['is_revoked']
