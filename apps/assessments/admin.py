from django.contrib import admin
from .models import Questionnaire, Question, Assessment, AssessmentResponse


class QuestionInline(admin.TabularInline):
    model = Question
    extra = 0
    fields = ['number', 'text_en', 'audit_area', 'critical_element', 'sms_component', 'study_area', 'sort_order']


@admin.register(Questionnaire)
class QuestionnaireAdmin(admin.ModelAdmin):
    list_display = ['code', 'version', 'type', 'title_en', 'is_active']
    list_filter = ['type', 'is_active']
    search_fields = ['code', 'title_en', 'title_fr']
    inlines = [QuestionInline]


@admin.register(Assessment)
class AssessmentAdmin(admin.ModelAdmin):
    list_display = ['title', 'org_id', 'assessment_type', 'status', 'progress', 'overall_score', 'submitted_at']
    list_filter = ['status', 'assessment_type', 'questionnaire__type']
    search_fields = ['title']
    readonly_fields = ['created_at', 'updated_at', 'started_at', 'submitted_at', 'completed_at']


@admin.register(AssessmentResponse)
class AssessmentResponseAdmin(admin.ModelAdmin):
    list_display = ['assessment', 'question', 'response_value', 'maturity_level', 'responded_at']
    list_filter = ['response_value', 'maturity_level']
    readonly_fields = ['responded_at']
