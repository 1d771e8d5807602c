"""
Service tests for peer reviews: requests, reference numbers, visibility,
team composition and the fieldwork checklist.
"""
from datetime import date
from unittest import mock

from django.test import TestCase

from apps.assessments.models import Assessment, AssessmentStatus
from apps.assessments.tests.test_services import make_ans_questionnaire
from apps.governance.models import AuditLog
from apps.governance.audit_service import AuditAction
from apps.identity.models import User, UserRole
from apps.notifications.models import Notification, NotificationType
from apps.organizations.models import Organization, AfricanRegion
from apps.reviewers import coi
from apps.reviewers.models import COIType
from apps.reviews import services
from apps.reviews.constants import DEFAULT_CHECKLIST
from apps.reviews.models import Review, ReviewStatus, ReviewTeamMember, TeamRole, InvitationStatus
from apps.reviews.schemas import ReviewRequestIn, ScheduleIn


def make_org(code, country="Kenya", region=AfricanRegion.ESAF):
    return Organization.objects.create(
        name_en=f"{code} ANSP", name_fr=f"ANSP {code}", organization_code=code, country=country, region=region,
    )


class ReviewTestBase(TestCase):
    def setUp(self):
        self.host = make_org("KCAA")
        self.other = make_org("GCAA", country="Ghana", region=AfricanRegion.WACAF)
        self.host_admin = User.objects.create_user(username="host_admin", role=UserRole.ANSP_ADMIN, org_id=self.host.id)
        self.host_staff = User.objects.create_user(username="host_staff", role=UserRole.STAFF, org_id=self.host.id)
        self.coordinator = User.objects.create_user(username="coord", role=UserRole.PROGRAMME_COORDINATOR)
        self.lead = User.objects.create_user(username="lead", role=UserRole.LEAD_REVIEWER, org_id=self.other.id)
        self.peer = User.objects.create_user(username="peer", role=UserRole.PEER_REVIEWER, org_id=self.other.id)
        self.peer2 = User.objects.create_user(username="peer2", role=UserRole.PEER_REVIEWER, org_id=self.other.id)

    def make_review(self, status=ReviewStatus.APPROVED, reference="PR-2025-001"):
        return Review.objects.create(host_org_id=self.host.id, reference_number=reference, status=status)

    def add_member(self, review, user, role=TeamRole.REVIEWER, status=InvitationStatus.CONFIRMED):
        return ReviewTeamMember.objects.create(review=review, user=user, role=role, invitation_status=status)


class ReferenceNumberTest(ReviewTestBase):
    def test_sequence_restarts_per_year(self):
        self.assertEqual(services.generate_reference_number(2025), "PR-2025-001")
        self.make_review(status=ReviewStatus.COMPLETED, reference="PR-2025-007")
        self.assertEqual(services.generate_reference_number(2025), "PR-2025-008")
        self.assertEqual(services.generate_reference_number(2026), "PR-2026-001")

    def test_request_retries_when_reference_taken_concurrently(self):
        taken = self.make_review(status=ReviewStatus.COMPLETED, reference="PR-2025-001")
        with mock.patch.object(
            services, "generate_reference_number", side_effect=[taken.reference_number, "PR-2025-002"],
        ):
            review = services.request_review(ReviewRequestIn(objectives="Full ANS review"), self.host_admin)

        self.assertEqual(review.reference_number, "PR-2025-002")
        self.assertEqual(Review.objects.count(), 2)


class RequestReviewTest(ReviewTestBase):
    def test_request_creates_review_and_notifies_coordinators(self):
        review = services.request_review(ReviewRequestIn(objectives="Full ANS review"), self.host_admin)

        self.assertEqual(review.host_org_id, self.host.id)
        self.assertEqual(review.status, ReviewStatus.REQUESTED)
        self.assertTrue(review.reference_number.startswith("PR-"))
        self.assertTrue(AuditLog.objects.filter(action=AuditAction.REQUEST_REVIEW, target_id=review.id).exists())
        self.assertTrue(Notification.objects.filter(
            user=self.coordinator, type=NotificationType.REVIEW_REQUESTED
        ).exists())

    def test_staff_cannot_request(self):
        with self.assertRaises(PermissionError):
            services.request_review(ReviewRequestIn(), self.host_staff)

    def test_one_active_review_per_organization(self):
        existing = self.make_review(status=ReviewStatus.SCHEDULED)
        with self.assertRaisesMessage(ValueError, existing.reference_number):
            services.request_review(ReviewRequestIn(), self.host_admin)

    def test_completed_review_does_not_block(self):
        self.make_review(status=ReviewStatus.COMPLETED)
        review = services.request_review(ReviewRequestIn(), self.host_admin)
        self.assertEqual(review.status, ReviewStatus.REQUESTED)

    def test_requested_dates_must_be_ordered(self):
        payload = ReviewRequestIn(requested_start_date=date(2025, 6, 10), requested_end_date=date(2025, 6, 1))
        with self.assertRaises(ValueError):
            services.request_review(payload, self.host_admin)

    def test_linked_assessments_must_be_submitted(self):
        questionnaire, _questions = make_ans_questionnaire()
        assessment = Assessment.objects.create(
            org_id=self.host.id, questionnaire=questionnaire, title="Self-assessment",
        )
        with self.assertRaisesMessage(ValueError, "Self-assessment"):
            services.request_review(ReviewRequestIn(assessment_ids=[assessment.id]), self.host_admin)

        assessment.status = AssessmentStatus.SUBMITTED
        assessment.save()
        review = services.request_review(ReviewRequestIn(assessment_ids=[assessment.id]), self.host_admin)
        self.assertEqual(list(review.assessments.all()), [assessment])

    def test_assessments_of_other_organizations_are_rejected(self):
        questionnaire, _questions = make_ans_questionnaire()
        foreign = Assessment.objects.create(
            org_id=self.other.id, questionnaire=questionnaire, title="Foreign", status=AssessmentStatus.SUBMITTED,
        )
        with self.assertRaises(ValueError):
            services.request_review(ReviewRequestIn(assessment_ids=[foreign.id]), self.host_admin)


class VisibilityTest(ReviewTestBase):
    def test_scoping(self):
        review = self.make_review()
        other_review = Review.objects.create(host_org_id=self.other.id, reference_number="PR-2025-002")

        self.assertEqual(set(services.visible_reviews(self.coordinator)), {review, other_review})
        self.assertEqual(list(services.visible_reviews(self.host_admin)), [review])
        self.assertEqual(list(services.visible_reviews(self.peer)), [])

        self.add_member(review, self.peer, status=InvitationStatus.INVITED)
        self.assertEqual(list(services.visible_reviews(self.peer)), [review])

    def test_declined_members_lose_access(self):
        review = self.make_review()
        self.add_member(review, self.peer, status=InvitationStatus.DECLINED)
        self.assertFalse(services.can_access_review(self.peer, review))


class TeamTest(ReviewTestBase):
    def test_first_assignment_moves_review_to_planning(self):
        review = self.make_review()
        member = services.assign_team_member(review, self.lead.id, TeamRole.LEAD_REVIEWER, performed_by=self.coordinator)

        self.assertEqual(member.invitation_status, InvitationStatus.INVITED)
        self.assertIsNotNone(member.invited_at)
        review.refresh_from_db()
        self.assertEqual(review.status, ReviewStatus.PLANNING)
        self.assertTrue(Notification.objects.filter(user=self.lead, type=NotificationType.TEAM_INVITATION).exists())
        self.assertTrue(AuditLog.objects.filter(action=AuditAction.ASSIGN_TEAM_MEMBER, target_id=review.id).exists())

    def test_reviewer_from_host_organization_is_rejected(self):
        review = self.make_review()
        local = User.objects.create_user(username="local", role=UserRole.PEER_REVIEWER, org_id=self.host.id)
        with self.assertRaisesMessage(ValueError, "own organization"):
            services.assign_team_member(review, local.id, TeamRole.REVIEWER, performed_by=self.coordinator)

    def test_non_reviewer_is_rejected(self):
        review = self.make_review()
        with self.assertRaisesMessage(ValueError, "not a reviewer"):
            services.assign_team_member(review, self.coordinator.id, TeamRole.REVIEWER, performed_by=self.coordinator)

    def test_lead_rules(self):
        review = self.make_review()
        with self.assertRaisesMessage(ValueError, "not qualified"):
            services.assign_team_member(review, self.peer.id, TeamRole.LEAD_REVIEWER, performed_by=self.coordinator)

        services.assign_team_member(review, self.lead.id, TeamRole.LEAD_REVIEWER, performed_by=self.coordinator)
        second_lead = User.objects.create_user(username="lead2", role=UserRole.LEAD_REVIEWER, org_id=self.other.id)
        with self.assertRaisesMessage(ValueError, "already has a Lead Reviewer"):
            services.assign_team_member(review, second_lead.id, TeamRole.LEAD_REVIEWER, performed_by=self.coordinator)

    def test_duplicate_assignment_is_rejected(self):
        review = self.make_review()
        services.assign_team_member(review, self.peer.id, TeamRole.REVIEWER, performed_by=self.coordinator)
        with self.assertRaisesMessage(ValueError, "already assigned"):
            services.assign_team_member(review, self.peer.id, TeamRole.REVIEWER, performed_by=self.coordinator)

    def test_team_locked_once_fieldwork_starts(self):
        review = self.make_review(status=ReviewStatus.IN_PROGRESS)
        with self.assertRaises(ValueError):
            services.assign_team_member(review, self.peer.id, TeamRole.REVIEWER, performed_by=self.coordinator)

    def test_unknown_role_is_rejected_before_any_write(self):
        review = self.make_review()
        with self.assertRaisesMessage(ValueError, "Unknown team role"):
            services.assign_team_member(review, self.peer.id, "BOGUS", performed_by=self.coordinator)

        review.refresh_from_db()
        self.assertEqual(review.status, ReviewStatus.APPROVED)
        self.assertFalse(review.team_members.exists())
        self.assertFalse(AuditLog.objects.filter(action=AuditAction.ASSIGN_TEAM_MEMBER).exists())

    def test_member_is_rolled_back_when_planning_transition_errors(self):
        review = self.make_review()
        with mock.patch.object(services.state_machine, "execute_transition", side_effect=RuntimeError("boom")):
            with self.assertRaises(RuntimeError):
                services.assign_team_member(review, self.peer.id, TeamRole.REVIEWER, performed_by=self.coordinator)

        review.refresh_from_db()
        self.assertEqual(review.status, ReviewStatus.APPROVED)
        self.assertFalse(review.team_members.exists())

    def test_lead_qualification_comes_from_reviewer_profile(self):
        review = self.make_review()
        self.lead.reviewer_profile.is_lead_qualified = False
        self.lead.reviewer_profile.save()
        with self.assertRaisesMessage(ValueError, "not qualified"):
            services.assign_team_member(review, self.lead.id, TeamRole.LEAD_REVIEWER, performed_by=self.coordinator)

        self.peer.reviewer_profile.is_lead_qualified = True
        self.peer.reviewer_profile.save()
        member = services.assign_team_member(review, self.peer.id, TeamRole.LEAD_REVIEWER, performed_by=self.coordinator)
        self.assertEqual(member.role, TeamRole.LEAD_REVIEWER)

    def test_hard_conflict_of_interest_blocks_assignment(self):
        review = self.make_review()
        coi.declare_conflict(
            self.peer.reviewer_profile, self.host.id, COIType.FAMILY_RELATIONSHIP, declared_by=self.peer,
        )
        with self.assertRaisesMessage(ValueError, "Conflict of interest"):
            services.assign_team_member(review, self.peer.id, TeamRole.REVIEWER, performed_by=self.coordinator)
        with self.assertRaisesMessage(ValueError, "cannot be overridden"):
            coi.grant_override(
                self.peer.reviewer_profile, self.host.id, "Relative left the ANSP", self.coordinator, review=review,
            )

    def test_soft_conflict_needs_an_override(self):
        review = self.make_review()
        coi.declare_conflict(self.peer.reviewer_profile, self.host.id, COIType.FORMER_EMPLOYEE, declared_by=self.peer)
        with self.assertRaisesMessage(ValueError, "requires an approved override"):
            services.assign_team_member(review, self.peer.id, TeamRole.REVIEWER, performed_by=self.coordinator)

        override = coi.grant_override(
            self.peer.reviewer_profile, self.host.id, "Left the organization in 2015", self.coordinator, review=review,
        )
        services.assign_team_member(review, self.peer.id, TeamRole.REVIEWER, performed_by=self.coordinator)
        log = AuditLog.objects.get(action=AuditAction.ASSIGN_TEAM_MEMBER, target_id=review.id)
        self.assertEqual(log.context["coi_override_id"], str(override.id))

    def test_recent_review_of_the_host_needs_an_override(self):
        previous = self.make_review(status=ReviewStatus.COMPLETED, reference="PR-2025-001")
        previous.actual_end_date = date.today()
        previous.save()
        self.add_member(previous, self.peer)

        review = self.make_review(reference="PR-2025-002")
        with self.assertRaisesMessage(ValueError, "requires an approved override"):
            services.assign_team_member(review, self.peer.id, TeamRole.REVIEWER, performed_by=self.coordinator)
        services.assign_team_member(review, self.peer2.id, TeamRole.REVIEWER, performed_by=self.coordinator)

    def test_respond_to_invitation(self):
        review = self.make_review()
        member = services.assign_team_member(review, self.peer.id, TeamRole.REVIEWER, performed_by=self.coordinator)

        member = services.respond_to_invitation(member, accept=False, decline_reason="Unavailable in June")
        self.assertEqual(member.invitation_status, InvitationStatus.DECLINED)
        self.assertEqual(member.decline_reason, "Unavailable in June")
        self.assertIsNotNone(member.declined_at)
        self.assertTrue(Notification.objects.filter(
            user=self.coordinator, type=NotificationType.TEAM_INVITATION_RESPONSE
        ).exists())

        with self.assertRaisesMessage(ValueError, "already been answered"):
            services.respond_to_invitation(member, accept=True)

    def test_remove_team_member(self):
        review = self.make_review(status=ReviewStatus.PLANNING)
        member = self.add_member(review, self.peer)
        services.remove_team_member(member, performed_by=self.coordinator)
        self.assertFalse(review.team_members.exists())
        self.assertTrue(AuditLog.objects.filter(action=AuditAction.REMOVE_TEAM_MEMBER, target_id=review.id).exists())


class ScheduleTest(ReviewTestBase):
    def test_update_schedule_notifies_team(self):
        review = self.make_review(status=ReviewStatus.PLANNING)
        self.add_member(review, self.peer)

        services.update_schedule(
            review, ScheduleIn(planned_start_date=date(2025, 9, 1), planned_end_date=date(2025, 9, 5)), self.coordinator,
        )
        review.refresh_from_db()
        self.assertEqual(review.planned_end_date, date(2025, 9, 5))
        self.assertTrue(Notification.objects.filter(user=self.peer, type=NotificationType.REVIEW_SCHEDULED).exists())

    def test_end_before_start_is_rejected(self):
        review = self.make_review(status=ReviewStatus.PLANNING)
        with self.assertRaises(ValueError):
            services.update_schedule(
                review, ScheduleIn(planned_start_date=date(2025, 9, 5), planned_end_date=date(2025, 9, 1)),
                self.coordinator,
            )

    def test_closed_review_cannot_be_rescheduled(self):
        review = self.make_review(status=ReviewStatus.CANCELLED)
        with self.assertRaises(ValueError):
            services.update_schedule(review, ScheduleIn(planned_start_date=date(2025, 9, 1)), self.coordinator)


class ChecklistTest(ReviewTestBase):
    def test_initialize_is_idempotent(self):
        review = self.make_review(status=ReviewStatus.IN_PROGRESS)
        self.assertEqual(len(services.initialize_checklist(review)), len(DEFAULT_CHECKLIST))
        self.assertEqual(len(services.initialize_checklist(review)), len(DEFAULT_CHECKLIST))

    def test_closing_meeting_requires_other_onsite_items(self):
        review = self.make_review(status=ReviewStatus.IN_PROGRESS)
        services.initialize_checklist(review)
        closing = review.checklist_items.get(item_code="SITE_CLOSING_MEETING")

        with self.assertRaisesMessage(ValueError, "SITE_OPENING_MEETING"):
            services.update_checklist_item(closing, self.lead, True)

        review.checklist_items.filter(phase="ON_SITE").exclude(item_code="SITE_CLOSING_MEETING").update(is_completed=True)
        closing = services.update_checklist_item(closing, self.lead, True, notes="Held with the CEO")
        self.assertTrue(closing.is_completed)
        self.assertEqual(closing.completed_by, self.lead)
        self.assertEqual(closing.notes, "Held with the CEO")

    def test_unticking_clears_completion(self):
        review = self.make_review(status=ReviewStatus.IN_PROGRESS)
        services.initialize_checklist(review)
        item = review.checklist_items.get(item_code="PRE_DOC_REQUEST_SENT")
        services.update_checklist_item(item, self.lead, True)
        item = services.update_checklist_item(item, self.lead, False)
        self.assertIsNone(item.completed_at)
        self.assertIsNone(item.completed_by)

    def test_summary(self):
        review = self.make_review(status=ReviewStatus.IN_PROGRESS)
        services.initialize_checklist(review)
        review.checklist_items.filter(phase="PRE_VISIT").update(is_completed=True)

        summary = services.get_checklist_summary(review)
        self.assertEqual(summary['total'], 14)
        self.assertEqual(summary['completed'], 4)
        self.assertEqual(summary['percentage'], 29)
        self.assertEqual(summary['by_phase']['PRE_VISIT'], {'total': 4, 'completed': 4})
        self.assertEqual(summary['by_phase']['ON_SITE'], {'total': 6, 'completed': 0})
