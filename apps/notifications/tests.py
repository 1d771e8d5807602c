from uuid import uuid4

from django.core import mail
from django.test import TestCase, Client

from apps.identity.models import User, UserRole
from .models import Notification, NotificationType, NotificationPriority
from .dtos import NotificationPayload
from . import services


def make_user(role=UserRole.SAFETY_MANAGER, org_id=None, **extra):
    username = f"user_{uuid4().hex[:8]}"
    return User.objects.create_user(
        username=username,
        email=extra.pop("email", f"{username}@ansp.test"),
        password="testpass123",
        role=role,
        org_id=org_id or uuid4(),
        **extra,
    )


PAYLOAD = NotificationPayload(
    type=NotificationType.CAP_OVERDUE,
    title_en="CAP overdue",
    title_fr="PAC en retard",
    message_en="The corrective action plan for FND-ASECNA-2025-001 is overdue.",
    message_fr="Le plan d'actions correctives pour FND-ASECNA-2025-001 est en retard.",
    entity_type="CorrectiveActionPlan",
    entity_id="abc",
    action_url="/caps/abc",
    priority=NotificationPriority.HIGH,
)


class SendNotificationTest(TestCase):
    def setUp(self):
        self.english = make_user(first_name="Grace")
        self.french = make_user(locale="fr", first_name="Aïcha")
        self.silent = make_user(email_notifications=False)

    def test_creates_in_app_rows_for_every_recipient(self):
        with self.captureOnCommitCallbacks(execute=True):
            result = services.send_notification(
                [self.english, self.french.id, self.silent, self.english], PAYLOAD
            )
        self.assertEqual(result.in_app_count, 3)
        self.assertEqual(result.errors, [])
        self.assertEqual(Notification.objects.count(), 3)

    def test_emails_only_opted_in_recipients_in_their_locale(self):
        with self.captureOnCommitCallbacks(execute=True):
            result = services.send_notification([self.english, self.french, self.silent], PAYLOAD)
        self.assertEqual(result.email_count, 2)
        self.assertEqual(len(mail.outbox), 2)
        subjects = {m.to[0]: m.subject for m in mail.outbox}
        self.assertEqual(subjects[self.english.email], "CAP overdue")
        self.assertEqual(subjects[self.french.email], "PAC en retard")
        self.assertEqual(
            Notification.objects.filter(email_sent_at__isnull=False).count(), 2
        )

    def test_skip_email(self):
        with self.captureOnCommitCallbacks(execute=True):
            result = services.send_notification([self.english], PAYLOAD, skip_email=True)
        self.assertEqual(result.in_app_count, 1)
        self.assertEqual(result.email_count, 0)
        self.assertEqual(len(mail.outbox), 0)

    def test_no_recipients(self):
        result = services.send_notification([], PAYLOAD)
        self.assertEqual(result.in_app_count, 0)

    def test_inactive_users_are_skipped(self):
        self.english.is_active = False
        self.english.save()
        result = services.send_notification([self.english], PAYLOAD)
        self.assertEqual(result.in_app_count, 0)

    def test_deliver_is_idempotent(self):
        with self.captureOnCommitCallbacks(execute=True):
            services.send_notification([self.english], PAYLOAD)
        notification = Notification.objects.get(user=self.english)
        self.assertFalse(services.deliver_notification_email(notification.id))
        self.assertEqual(len(mail.outbox), 1)


class RecipientTest(TestCase):
    def test_organization_recipients_by_role(self):
        org_id = uuid4()
        manager = make_user(UserRole.SAFETY_MANAGER, org_id)
        make_user(UserRole.STAFF, org_id)
        make_user(UserRole.SAFETY_MANAGER)
        recipients = services.get_organization_recipients(org_id, [UserRole.SAFETY_MANAGER])
        self.assertEqual(recipients, [manager])

    def test_programme_recipients(self):
        coordinator = make_user(UserRole.PROGRAMME_COORDINATOR, org_id=None)
        make_user(UserRole.STAFF)
        self.assertIn(coordinator, services.get_programme_recipients())


class NotificationAPITest(TestCase):
    def setUp(self):
        self.client = Client()
        self.user = make_user(locale="fr")
        self.other = make_user()
        services.send_notification([self.user, self.other], PAYLOAD, skip_email=True)

    def test_list_in_user_locale(self):
        self.client.force_login(self.user)
        response = self.client.get("/api/notifications/")
        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]["title"], "PAC en retard")

    def test_locale_override(self):
        self.client.force_login(self.user)
        data = self.client.get("/api/notifications/?locale=en").json()
        self.assertEqual(data[0]["title"], "CAP overdue")

    def test_mark_read_flow(self):
        self.client.force_login(self.user)
        self.assertEqual(self.client.get("/api/notifications/unread-count").json()["count"], 1)
        notification = Notification.objects.get(user=self.user)
        response = self.client.post(f"/api/notifications/{notification.id}/read")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get("/api/notifications/unread-count").json()["count"], 0)

    def test_cannot_mark_someone_elses_notification(self):
        self.client.force_login(self.user)
        foreign = Notification.objects.get(user=self.other)
        response = self.client.post(f"/api/notifications/{foreign.id}/read")
        self.assertEqual(response.status_code, 404)

    def test_read_all(self):
        self.client.force_login(self.user)
        response = self.client.post("/api/notifications/read-all")
        self.assertEqual(response.json()["updated"], 1)

    def test_requires_auth(self):
        self.assertEqual(self.client.get("/api/notifications/").status_code, 401)
