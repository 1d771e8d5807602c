from django.contrib import admin
from .models import Organization, RegionalTeam, JoinRequest


@admin.register(RegionalTeam)
class RegionalTeamAdmin(admin.ModelAdmin):
    list_display = ['team_number', 'code', 'name_en', 'is_active']


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ['name_en', 'organization_code', 'country', 'region', 'participation_status', 'regional_team']
    list_filter = ['region', 'participation_status', 'membership_status', 'is_active']
    search_fields = ['name_en', 'name_fr', 'organization_code', 'icao_code', 'country']


@admin.register(JoinRequest)
class JoinRequestAdmin(admin.ModelAdmin):
    list_display = ['organization', 'contact_email', 'status', 'created_at']
    list_filter = ['status']
    search_fields = ['organization__name_en', 'contact_name', 'contact_email']
    raw_id_fields = ['organization', 'coordinator_reviewed_by', 'sc_decision_by']
