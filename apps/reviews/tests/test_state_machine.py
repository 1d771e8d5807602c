"""
State machine tests: transition table, role checks, validators and the
side effects of executing a transition.
"""
from datetime import date

from apps.governance.audit_service import AuditAction
from apps.governance.models import AuditLog
from apps.identity.models import UserRole, User
from apps.notifications.models import Notification, NotificationType
from apps.reviews import state_machine
from apps.reviews.models import ReviewStatus, ReviewPhase, TeamRole, InvitationStatus
from .test_services import ReviewTestBase


class TransitionTableTest(ReviewTestBase):
    def test_valid_transitions_from(self):
        self.assertEqual(
            state_machine.get_valid_transitions_from(ReviewStatus.REQUESTED),
            [ReviewStatus.APPROVED, ReviewStatus.CANCELLED],
        )
        self.assertEqual(
            state_machine.get_valid_transitions_from(ReviewStatus.PLANNING),
            [ReviewStatus.SCHEDULED, ReviewStatus.CANCELLED],
        )
        self.assertEqual(state_machine.get_valid_transitions_from(ReviewStatus.COMPLETED), [])

    def test_invalid_transition_lists_alternatives(self):
        review = self.make_review(status=ReviewStatus.REQUESTED)
        check = state_machine.can_transition(review, ReviewStatus.COMPLETED, self.coordinator)
        self.assertFalse(check.allowed)
        self.assertEqual(check.errors[0], "Invalid transition: REQUESTED → COMPLETED")
        self.assertIn("APPROVED, CANCELLED", check.errors[1])

    def test_role_is_enforced(self):
        review = self.make_review(status=ReviewStatus.REQUESTED)
        check = state_machine.can_transition(review, ReviewStatus.APPROVED, self.host_admin)
        self.assertFalse(check.allowed)
        self.assertIn("ANSP_ADMIN", check.errors[0])

        steering = User.objects.create_user(username="sc", role=UserRole.STEERING_COMMITTEE)
        self.assertTrue(state_machine.can_transition(review, ReviewStatus.APPROVED, steering).allowed)

    def test_lead_reviewer_must_be_the_confirmed_lead(self):
        review = self.make_review(status=ReviewStatus.SCHEDULED)
        review.actual_start_date = date(2025, 9, 1)
        self.add_member(review, self.lead, role=TeamRole.LEAD_REVIEWER, status=InvitationStatus.INVITED)
        self.add_member(review, self.peer)
        self.assertFalse(state_machine.can_transition(review, ReviewStatus.IN_PROGRESS, self.lead).allowed)

        review.team_members.filter(user=self.lead).update(invitation_status=InvitationStatus.CONFIRMED)
        self.assertTrue(state_machine.can_transition(review, ReviewStatus.IN_PROGRESS, self.lead).allowed)


class ValidatorTest(ReviewTestBase):
    def test_schedule_requirements(self):
        review = self.make_review(status=ReviewStatus.PLANNING)
        check = state_machine.can_transition(review, ReviewStatus.SCHEDULED, self.coordinator)

        self.assertFalse(check.allowed)
        self.assertIn("Lead Reviewer must be assigned", check.errors)
        self.assertIn("Minimum 2 team members required", check.errors)
        self.assertIn("Planned start date must be set", check.errors)
        self.assertIn("Planned end date must be set", check.errors)
        self.assertTrue(all(not c.met for c in check.conditions))

    def test_schedule_warnings(self):
        review = self.make_review(status=ReviewStatus.PLANNING)
        review.planned_start_date = date(2025, 9, 1)
        review.planned_end_date = date(2025, 9, 5)
        review.save()
        self.add_member(review, self.lead, role=TeamRole.LEAD_REVIEWER, status=InvitationStatus.INVITED)
        self.add_member(review, self.peer, status=InvitationStatus.INVITED)

        check = state_machine.can_transition(review, ReviewStatus.SCHEDULED, self.coordinator)
        self.assertTrue(check.allowed)
        self.assertEqual(check.errors, [])
        self.assertIn("Recommended team size is 3+ reviewers", check.warnings)
        self.assertIn("2 team members have not confirmed", check.warnings)
        self.assertTrue(all(c.met for c in check.conditions))

    def test_declined_members_do_not_count(self):
        review = self.make_review(status=ReviewStatus.PLANNING)
        review.planned_start_date = date(2025, 9, 1)
        review.planned_end_date = date(2025, 9, 5)
        self.add_member(review, self.lead, role=TeamRole.LEAD_REVIEWER)
        self.add_member(review, self.peer, status=InvitationStatus.DECLINED)

        check = state_machine.can_transition(review, ReviewStatus.SCHEDULED, self.coordinator)
        self.assertIn("Minimum 2 team members required", check.errors)

    def test_start_requires_confirmations(self):
        review = self.make_review(status=ReviewStatus.SCHEDULED)
        review.actual_start_date = date(2025, 9, 1)
        self.add_member(review, self.lead, role=TeamRole.LEAD_REVIEWER, status=InvitationStatus.INVITED)
        self.add_member(review, self.peer)

        check = state_machine.can_transition(review, ReviewStatus.IN_PROGRESS, self.coordinator)
        self.assertIn("Lead Reviewer must confirm participation", check.errors)
        self.assertIn("At least 2 team members must confirm participation", check.errors)
        conditions = {c.label: c.met for c in check.conditions}
        self.assertTrue(conditions["Actual start date set"])
        self.assertFalse(conditions["Lead Reviewer confirmed"])

    def test_fieldwork_end_warns_without_findings(self):
        review = self.make_review(status=ReviewStatus.IN_PROGRESS)
        review.actual_end_date = date(2025, 9, 5)
        check = state_machine.can_transition(review, ReviewStatus.REPORT_DRAFTING, self.lead)
        # Not the confirmed lead of this review
        self.assertFalse(check.allowed)

        self.add_member(review, self.lead, role=TeamRole.LEAD_REVIEWER)
        check = state_machine.can_transition(review, ReviewStatus.REPORT_DRAFTING, self.lead)
        self.assertTrue(check.allowed)
        self.assertIn("No findings have been entered yet", check.warnings)

    def test_report_submission_requires_a_finding(self):
        review = self.make_review(status=ReviewStatus.REPORT_DRAFTING)
        check = state_machine.can_transition(review, ReviewStatus.REPORT_REVIEW, self.coordinator)
        self.assertIn("At least one finding must be entered", check.errors)
        self.assertIn("Draft report has not been generated", check.warnings)

    def test_completion_requires_report(self):
        review = self.make_review(status=ReviewStatus.REPORT_REVIEW)
        check = state_machine.can_transition(review, ReviewStatus.COMPLETED, self.coordinator)
        self.assertFalse(check.allowed)
        self.assertIn("Report must be generated", check.errors)

    def test_available_transitions_respect_roles(self):
        review = self.make_review(status=ReviewStatus.PLANNING)
        targets = [t.target_status for t in state_machine.get_available_transitions(review, self.coordinator)]
        self.assertEqual(targets, [ReviewStatus.SCHEDULED, ReviewStatus.CANCELLED])
        self.assertEqual(state_machine.get_available_transitions(review, self.host_admin), [])


class ExecuteTransitionTest(ReviewTestBase):
    def make_startable(self):
        review = self.make_review(status=ReviewStatus.SCHEDULED)
        self.add_member(review, self.lead, role=TeamRole.LEAD_REVIEWER)
        self.add_member(review, self.peer)
        return review

    def test_start_with_effective_date(self):
        review = self.make_startable()
        result = state_machine.execute_transition(
            review, ReviewStatus.IN_PROGRESS, self.coordinator, effective_date=date(2025, 9, 1)
        )

        self.assertTrue(result.success)
        self.assertEqual(result.previous_status, ReviewStatus.SCHEDULED)
        review.refresh_from_db()
        self.assertEqual(review.status, ReviewStatus.IN_PROGRESS)
        self.assertEqual(review.phase, ReviewPhase.ON_SITE)
        self.assertEqual(review.actual_start_date, date(2025, 9, 1))

    def test_missing_start_date_blocks_both_check_and_execute(self):
        review = self.make_startable()

        check = state_machine.can_transition(review, ReviewStatus.IN_PROGRESS, self.coordinator)
        self.assertFalse(check.allowed)
        self.assertEqual(check.errors, ["Actual start date must be set"])

        result = state_machine.execute_transition(review, ReviewStatus.IN_PROGRESS, self.coordinator)
        self.assertFalse(result.success)
        self.assertEqual(result.errors, check.errors)
        review.refresh_from_db()
        self.assertEqual(review.status, ReviewStatus.SCHEDULED)
        self.assertIsNone(review.actual_start_date)

    def test_effective_date_does_not_override_recorded_date(self):
        review = self.make_startable()
        review.actual_start_date = date(2025, 9, 2)
        review.save()
        state_machine.execute_transition(
            review, ReviewStatus.IN_PROGRESS, self.coordinator, effective_date=date(2025, 9, 9)
        )
        review.refresh_from_db()
        self.assertEqual(review.actual_start_date, date(2025, 9, 2))

    def test_failed_transition_leaves_review_untouched(self):
        review = self.make_review(status=ReviewStatus.SCHEDULED)
        result = state_machine.execute_transition(review, ReviewStatus.IN_PROGRESS, self.coordinator)

        self.assertFalse(result.success)
        self.assertIsNone(review.actual_start_date)
        review.refresh_from_db()
        self.assertEqual(review.status, ReviewStatus.SCHEDULED)
        self.assertFalse(AuditLog.objects.filter(action=AuditAction.REVIEW_STATUS_CHANGE).exists())

    def test_audit_and_notifications(self):
        review = self.make_startable()
        state_machine.execute_transition(
            review, ReviewStatus.IN_PROGRESS, self.coordinator, notes="Kick-off", effective_date=date(2025, 9, 1)
        )

        log = AuditLog.objects.get(action=AuditAction.REVIEW_STATUS_CHANGE, target_id=review.id)
        self.assertEqual(log.context["from"], ReviewStatus.SCHEDULED)
        self.assertEqual(log.context["to"], ReviewStatus.IN_PROGRESS)
        self.assertEqual(log.context["notes"], "Kick-off")
        for user in (self.host_admin, self.lead, self.peer):
            self.assertTrue(Notification.objects.filter(user=user, type=NotificationType.REVIEW_STARTED).exists())
        self.assertFalse(Notification.objects.filter(user=self.host_staff).exists())

    def test_rejecting_a_request(self):
        review = self.make_review(status=ReviewStatus.REQUESTED)
        result = state_machine.execute_transition(
            review, ReviewStatus.CANCELLED, self.coordinator, reason="Assessment incomplete"
        )
        self.assertTrue(result.success)
        review.refresh_from_db()
        self.assertEqual(review.cancellation_reason, "Assessment incomplete")
        self.assertEqual(review.phase, ReviewPhase.CLOSED)
        self.assertTrue(Notification.objects.filter(
            user=self.host_admin, type=NotificationType.REVIEW_REJECTED
        ).exists())


class StatusFlowTest(ReviewTestBase):
    def test_localized_flow(self):
        flow = state_machine.get_status_flow("fr")
        self.assertEqual(flow[0]["status"], ReviewStatus.REQUESTED)
        self.assertEqual(flow[0]["label"], "Demandée")
        self.assertEqual(flow[-1]["status"], ReviewStatus.CANCELLED)
        self.assertEqual(flow[-1]["next_statuses"], [])
