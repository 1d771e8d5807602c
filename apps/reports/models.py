import uuid
from django.db import models


class ReportStatus(models.TextChoices):
    DRAFT = 'DRAFT', 'Draft'
    UNDER_REVIEW = 'UNDER_REVIEW', 'Under Review'
    FINAL = 'FINAL', 'Final'
    PUBLISHED = 'PUBLISHED', 'Published'


class ReviewReport(models.Model):
    """
    The report of one peer review. `content` holds the aggregated,
    localized report data; the rendered PDF lives in default storage.
    """
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    review = models.OneToOneField('reviews.Review', on_delete=models.CASCADE, related_name='report')
    status = models.CharField(max_length=15, choices=ReportStatus.choices, default=ReportStatus.DRAFT, db_index=True)
    locale = models.CharField(max_length=2, default='en')

    content = models.JSONField(default=dict, blank=True)
    executive_summary_en = models.TextField(blank=True)
    executive_summary_fr = models.TextField(blank=True)
    conclusion_en = models.TextField(blank=True)
    conclusion_fr = models.TextField(blank=True)

    file_url = models.CharField(max_length=500, blank=True)
    file_name = models.CharField(max_length=255, blank=True)
    version = models.PositiveIntegerField(default=0)
    version_history = models.JSONField(default=list, blank=True)

    generated_at = models.DateTimeField(null=True, blank=True)
    generated_by = models.ForeignKey(
        'identity.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='generated_reports'
    )
    submitted_at = models.DateTimeField(null=True, blank=True)
    finalized_at = models.DateTimeField(null=True, blank=True)
    finalized_by = models.ForeignKey(
        'identity.User', on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    published_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Report {self.review}"

    @property
    def reference(self) -> str:
        return f"AAPRP-RPT-{self.review.reference_number}"
