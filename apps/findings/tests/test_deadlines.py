"""
CAP deadline tracking: urgency bands, milestone progress, statistics and
the escalation sweep with its 24 hour de-duplication.
"""
from datetime import date, timedelta

from django.test import SimpleTestCase
from django.utils import timezone

from apps.findings import cap_deadline_service as deadlines
from apps.findings.models import CAPStatus, CAPMilestone, MilestoneStatus
from apps.notifications.models import Notification, NotificationType, NotificationPriority
from .test_services import FindingTestBase


class DeadlineInfoTest(SimpleTestCase):
    today = date(2025, 6, 10)

    def info(self, days, status=CAPStatus.IN_PROGRESS, completed=0, total=0):
        return deadlines.calculate_deadline_info(
            self.today + timedelta(days=days), status, completed, total, today=self.today,
        )

    def test_urgency_bands(self):
        self.assertEqual(self.info(-3).urgency_level, "overdue")
        self.assertTrue(self.info(-3).is_overdue)
        self.assertEqual(self.info(0).urgency_level, "critical")
        self.assertTrue(self.info(0).is_due_today)
        self.assertEqual(self.info(1).urgency_level, "critical")
        self.assertEqual(self.info(7).urgency_level, "warning")
        self.assertTrue(self.info(7).is_due_soon)
        self.assertEqual(self.info(8).urgency_level, "normal")
        self.assertFalse(self.info(8).is_due_soon)
        self.assertEqual(self.info(-3).days_remaining, -3)

    def test_percentage_prefers_milestones(self):
        self.assertEqual(self.info(30, status=CAPStatus.IN_PROGRESS).percentage_complete, 50)
        self.assertEqual(self.info(30, completed=1, total=4).percentage_complete, 25)
        self.assertEqual(self.info(30, status=CAPStatus.CLOSED).percentage_complete, 100)


class DeadlineQueryTest(FindingTestBase):
    def test_milestone_progress(self):
        cap = self.make_cap()
        today = timezone.localdate()
        CAPMilestone.objects.create(cap=cap, title_en="a", target_date=today - timedelta(days=2))
        CAPMilestone.objects.create(cap=cap, title_en="b", target_date=today + timedelta(days=2))
        CAPMilestone.objects.create(
            cap=cap, title_en="c", target_date=today - timedelta(days=5), status=MilestoneStatus.COMPLETED,
        )
        CAPMilestone.objects.create(
            cap=cap, title_en="d", target_date=today + timedelta(days=5), status=MilestoneStatus.IN_PROGRESS,
        )

        tracked = deadlines.with_deadline_info(cap)
        progress = tracked.milestone_progress
        self.assertEqual((progress.total, progress.completed, progress.overdue), (4, 1, 1))
        self.assertEqual((progress.upcoming, progress.in_progress), (1, 1))
        self.assertEqual(tracked.deadline_info.percentage_complete, 25)

    def test_overdue_only_filter_and_statistics(self):
        today = timezone.localdate()
        late = self.make_cap()
        late.due_date = today - timedelta(days=4)
        late.save()
        soon = self.make_cap()
        soon.due_date = today + timedelta(days=3)
        soon.save()
        closed = self.make_cap(status=CAPStatus.CLOSED)
        closed.closed_at = timezone.now()
        closed.save()

        overdue = deadlines.get_caps_with_deadline_info(org_id=self.host.id, overdue_only=True)
        self.assertEqual([r.cap for r in overdue], [late])
        self.assertEqual(len(deadlines.get_caps_with_deadline_info(org_id=self.host.id)), 2)
        self.assertEqual(len(deadlines.get_caps_with_deadline_info(include_completed=True)), 3)
        self.assertEqual([r.cap for r in deadlines.get_caps_due_within_days(7)], [soon])

        stats = deadlines.get_cap_statistics(org_id=self.host.id)
        self.assertEqual(stats["total"], 3)
        self.assertEqual(stats["overdue"], 1)
        self.assertEqual(stats["due_soon"], 1)
        self.assertEqual(stats["by_status"][CAPStatus.CLOSED], 1)
        self.assertEqual(stats["on_time_completion_rate"], 100)
        self.assertEqual(stats["average_days_to_close"], 0)

    def test_update_milestone_statuses(self):
        cap = self.make_cap()
        today = timezone.localdate()
        late = CAPMilestone.objects.create(cap=cap, title_en="late", target_date=today - timedelta(days=1))
        done = CAPMilestone.objects.create(
            cap=cap, title_en="done", target_date=today - timedelta(days=1), status=MilestoneStatus.COMPLETED,
        )
        self.assertEqual(deadlines.update_milestone_statuses(), 1)
        late.refresh_from_db()
        done.refresh_from_db()
        self.assertEqual(late.status, MilestoneStatus.OVERDUE)
        self.assertEqual(done.status, MilestoneStatus.COMPLETED)


class EscalationTest(FindingTestBase):
    def cap_due_in(self, days, status=CAPStatus.IN_PROGRESS):
        cap = self.make_cap(status=status)
        cap.due_date = timezone.localdate() + timedelta(days=days)
        cap.save()
        return cap

    def test_event_detection(self):
        caps = {days: self.cap_due_in(days) for days in (7, 1, 0, -2, 5)}
        self.cap_due_in(-10, status=CAPStatus.VERIFIED)

        events = {e.cap_id: e for e in deadlines.detect_escalation_events()}
        self.assertEqual(events[caps[7].id].type, deadlines.EVENT_7_DAYS)
        self.assertEqual(events[caps[1].id].type, deadlines.EVENT_1_DAY)
        self.assertEqual(events[caps[0].id].type, deadlines.EVENT_DUE_TODAY)
        self.assertEqual(events[caps[-2].id].type, deadlines.EVENT_OVERDUE)
        self.assertEqual(events[caps[-2].id].days_overdue, 2)
        self.assertNotIn(caps[5].id, events)
        self.assertEqual(len(events), 4)
        self.assertEqual(events[caps[7].id].organization_name_en, "KCAA ANSP")
        self.assertEqual(set(events[caps[7].id].recipient_ids), {self.safety_manager.id, self.host_admin.id})

    def test_overdue_cap_notifies_once_a_day(self):
        cap = self.cap_due_in(-3)

        summary = deadlines.process_escalations()
        self.assertEqual(summary, {'events': 1, 'notified': 1})
        notification = Notification.objects.get(user=self.safety_manager, type=NotificationType.CAP_OVERDUE)
        self.assertEqual(notification.priority, NotificationPriority.URGENT)
        self.assertEqual(notification.entity_id, str(cap.id))
        self.assertIn("3 day(s) overdue", notification.message_en)

        self.assertEqual(deadlines.process_escalations(), {'events': 1, 'notified': 0})

    def test_approaching_deadline(self):
        self.cap_due_in(7)
        deadlines.process_escalations(org_id=self.host.id)
        notification = Notification.objects.get(user=self.host_admin, type=NotificationType.CAP_DEADLINE_APPROACHING)
        self.assertEqual(notification.priority, NotificationPriority.NORMAL)
        self.assertIn("due in 7 days", notification.message_en)
        self.assertIn("dans 7 jours", notification.message_fr)

    def test_overdue_milestone(self):
        cap = self.cap_due_in(30)
        milestone = CAPMilestone.objects.create(
            cap=cap, title_en="Train staff", target_date=timezone.localdate() - timedelta(days=1),
        )

        summary = deadlines.process_escalations()
        self.assertEqual(summary["notified"], 1)
        milestone.refresh_from_db()
        self.assertEqual(milestone.status, MilestoneStatus.OVERDUE)
        self.assertTrue(Notification.objects.filter(
            user=self.safety_manager, entity_type="CAPMilestone", entity_id=str(milestone.id),
        ).exists())

    def test_other_organizations_are_skipped(self):
        self.cap_due_in(-1)
        self.assertEqual(deadlines.process_escalations(org_id=self.other.id), {'events': 0, 'notified': 0})
