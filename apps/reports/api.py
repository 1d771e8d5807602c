from typing import List, Optional
from uuid import UUID
from ninja import Router
from ninja.errors import HttpError
from django.http import HttpRequest
from django.shortcuts import get_object_or_404

from apps.identity.decorators import require_auth
from apps.reviews.services import visible_reviews
from .models import ReviewReport
from .schemas import (
    ReportOut, ReportDetailOut, ReportGenerateIn, ReportSectionsIn, ReportStatusIn,
    ReportStatisticsOut, ReportQueuedOut,
)
from . import report_service

router = Router(tags=["Reports"])


def _get_report(request: HttpRequest, report_id: UUID):
    user = require_auth(request)
    report = get_object_or_404(report_service.visible_reports(user), id=report_id)
    return user, report


def _detail(user, report: ReviewReport):
    return {
        'report': report,
        'content': report.content,
        'version_history': report.version_history,
        'allowed_statuses': report_service.get_allowed_report_statuses(user, report),
        'can_edit': report_service.can_edit_report(user, report.review),
    }


@router.get("", response=List[ReportOut], auth=None)
def list_reports(request: HttpRequest, status: Optional[str] = None):
    user = require_auth(request)
    qs = report_service.visible_reports(user)
    if status:
        qs = qs.filter(status=status)
    return qs


@router.get("/statistics", response=ReportStatisticsOut, auth=None)
def report_statistics(request: HttpRequest):
    user = require_auth(request)
    return report_service.get_report_statistics(user)


@router.post("/reviews/{review_id}/generate", response={202: ReportQueuedOut}, auth=None)
def generate_report(request: HttpRequest, review_id: UUID, payload: ReportGenerateIn):
    user = require_auth(request)
    review = get_object_or_404(visible_reviews(user), id=review_id)
    try:
        report = report_service.request_report_generation(review, user, locale=payload.locale)
    except PermissionError as e:
        raise HttpError(403, str(e))
    except ValueError as e:
        raise HttpError(400, str(e))
    return 202, {'report_id': report.id, 'version': report.version, 'status': report.status}


@router.get("/reviews/{review_id}", response=ReportDetailOut, auth=None)
def get_review_report(request: HttpRequest, review_id: UUID):
    user = require_auth(request)
    report = get_object_or_404(report_service.visible_reports(user), review_id=review_id)
    return _detail(user, report)


@router.get("/{report_id}", response=ReportDetailOut, auth=None)
def get_report(request: HttpRequest, report_id: UUID):
    user, report = _get_report(request, report_id)
    return _detail(user, report)


@router.patch("/{report_id}", response=ReportDetailOut, auth=None)
def update_report(request: HttpRequest, report_id: UUID, payload: ReportSectionsIn):
    user, report = _get_report(request, report_id)
    try:
        report = report_service.update_report_sections(report, payload, user)
    except PermissionError as e:
        raise HttpError(403, str(e))
    except ValueError as e:
        raise HttpError(400, str(e))
    return _detail(user, report)


@router.post("/{report_id}/status", response=ReportDetailOut, auth=None)
def change_report_status(request: HttpRequest, report_id: UUID, payload: ReportStatusIn):
    user, report = _get_report(request, report_id)
    try:
        report = report_service.transition_report(report, payload.status, user)
    except PermissionError as e:
        raise HttpError(403, str(e))
    except ValueError as e:
        raise HttpError(400, str(e))
    return _detail(user, report)


@router.get("/{report_id}/download", auth=None)
def download_report(request: HttpRequest, report_id: UUID):
    _user, report = _get_report(request, report_id)
    if not report.file_url:
        raise HttpError(404, "The report PDF has not been generated yet")
    return {'file_url': report.file_url, 'file_name': report.file_name, 'version': report.version}
