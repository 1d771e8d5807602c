"""
API Schemas for Reports app.
"""
from typing import Dict, List, Optional
from uuid import UUID
from ninja import Schema
from ninja.orm import create_schema

from .models import ReviewReport

ReportOut = create_schema(ReviewReport, exclude=['content', 'version_history'])


class ReportGenerateIn(Schema):
    locale: Optional[str] = None


class ReportSectionsIn(Schema):
    executive_summary_en: Optional[str] = None
    executive_summary_fr: Optional[str] = None
    conclusion_en: Optional[str] = None
    conclusion_fr: Optional[str] = None


class ReportStatusIn(Schema):
    status: str


class ReportDetailOut(Schema):
    report: ReportOut
    content: Dict
    version_history: List[Dict]
    allowed_statuses: List[str]
    can_edit: bool


class ReportStatisticsOut(Schema):
    total: int
    by_status: Dict[str, int]


class ReportQueuedOut(Schema):
    report_id: UUID
    version: int
    status: str
