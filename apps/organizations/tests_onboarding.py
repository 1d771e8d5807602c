import json
from django.core import mail
from django.test import TestCase, Client
from apps.organizations.models import (
    Organization, RegionalTeam, JoinRequest, JoinRequestStatus, ParticipationStatus, MembershipStatus,
)
from apps.organizations import services
from apps.organizations.dtos import JoinRequestIn
from apps.identity.models import User, UserRole
from apps.governance.models import AuditLog
from apps.notifications.models import Notification

MOTIVATION = (
    "Our ANSP wishes to strengthen its safety management system through structured peer "
    "review and to share lessons learned with neighbouring providers in the region."
)


class OnboardingTests(TestCase):
    def setUp(self):
        self.client = Client()
        self.coordinator = User.objects.create_user(username="coord", role=UserRole.PROGRAMME_COORDINATOR)

    def _onboard(self, user=None):
        payload = {
            "organization": {
                "name_en": "Ghana Civil Aviation Authority",
                "name_fr": "Autorité de l'aviation civile du Ghana",
                "organization_code": "GCAA",
                "country": "Ghana",
                "region": "WACAF",
            },
            "admin_user": {
                "username": "gcaa_admin",
                "email": "admin@gcaa.test",
                "password": "StrongPassword123!",
                "first_name": "Kofi",
                "last_name": "Mensah",
                "role": "STAFF"
            }
        }
        self.client.force_login(user or self.coordinator)
        return self.client.post(
            "/api/organizations/onboard",
            data=json.dumps(payload),
            content_type="application/json"
        )

    def test_onboard_organization_flow(self):
        """
        Verify that we can onboard a new organization along with its admin user.
        """
        response = self._onboard()
        self.assertEqual(response.status_code, 200)
        data = response.json()

        org_id = data["organization"]["id"]
        user = User.objects.get(id=data["admin_user"]["id"])

        # Role is always forced to ANSP_ADMIN
        self.assertEqual(user.role, UserRole.ANSP_ADMIN)
        self.assertEqual(str(user.org_id), org_id)
        self.assertTrue(user.check_password("StrongPassword123!"))
        self.assertEqual(Organization.objects.get(id=org_id).participation_status, ParticipationStatus.REGISTERED)
        self.assertTrue(AuditLog.objects.filter(action="CREATE_ORGANIZATION", target_id=org_id).exists())

    def test_onboard_requires_programme_rights(self):
        ansp_admin = User.objects.create_user(username="other_admin", role=UserRole.ANSP_ADMIN,
                                              org_id=self.coordinator.id)
        self.assertEqual(self._onboard(ansp_admin).status_code, 403)
        self.assertFalse(Organization.objects.exists())

    def test_admin_can_add_staff_to_own_organization(self):
        data = self._onboard().json()
        admin_user = User.objects.get(id=data["admin_user"]["id"])
        self.client.force_login(admin_user)

        response = self.client.post(
            "/api/identity/users",
            data=json.dumps({
                "username": "gcaa_sm",
                "email": "sm@gcaa.test",
                "password": "StaffPassword123!",
                "first_name": "Ama",
                "last_name": "Owusu",
                "role": "SAFETY_MANAGER",
            }),
            content_type="application/json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(str(response.json()["org_id"]), data["organization"]["id"])


class JoinRequestWorkflowTests(TestCase):
    def setUp(self):
        self.client = Client()
        self.team = RegionalTeam.objects.create(team_number=2, code="T2", name_en="Team 2", name_fr="Équipe 2")
        self.org = Organization.objects.create(
            name_en="Roberts FIR", name_fr="FIR Roberts", organization_code="RFIR",
            country="Liberia", region="WACAF",
        )
        self.coordinator = User.objects.create_user(
            username="coord", email="coord@aaprp.test", role=UserRole.PROGRAMME_COORDINATOR
        )
        self.sc_member = User.objects.create_user(
            username="sc", email="sc@aaprp.test", role=UserRole.STEERING_COMMITTEE
        )

    def _submit(self, **overrides):
        payload = {
            "organization_id": str(self.org.id),
            "contact_name": "Musa Kamara",
            "contact_email": "musa@rfir.test",
            "contact_job_title": "Safety Manager",
            "motivation_statement": MOTIVATION,
            "proposed_reviewer_count": 3,
            "preferred_team": 2,
        }
        payload.update(overrides)
        return self.client.post(
            "/api/organizations/join-requests", data=json.dumps(payload), content_type="application/json"
        )

    def _review(self, join_request_id):
        self.client.force_login(self.coordinator)
        return self.client.post(
            f"/api/organizations/join-requests/{join_request_id}/coordinator-review",
            data=json.dumps({"notes": "Complete application, strong motivation.", "recommendation": "APPROVE",
                             "recommended_team": 2}),
            content_type="application/json",
        )

    def _decide(self, join_request_id, **payload):
        self.client.force_login(self.sc_member)
        return self.client.post(
            f"/api/organizations/join-requests/{join_request_id}/sc-decision",
            data=json.dumps(payload),
            content_type="application/json",
        )

    def test_submit_is_public_and_acknowledged(self):
        response = self._submit()
        self.assertEqual(response.status_code, 201)
        self.org.refresh_from_db()
        self.assertEqual(self.org.participation_status, ParticipationStatus.APPLIED)
        self.assertEqual(mail.outbox[0].to, ["musa@rfir.test"])
        self.assertTrue(Notification.objects.filter(user=self.coordinator).exists())

    def test_short_motivation_is_rejected(self):
        response = self._submit(motivation_statement="Too short")
        self.assertEqual(response.status_code, 422)

    def test_duplicate_pending_request_is_rejected(self):
        self._submit()
        response = self._submit()
        self.assertEqual(response.status_code, 400)

    def test_active_participant_cannot_apply(self):
        self.org.participation_status = ParticipationStatus.ACTIVE
        self.org.save()
        self.assertEqual(self._submit().status_code, 400)

    def test_full_approval_flow(self):
        join_request_id = self._submit().json()["id"]

        response = self._review(join_request_id)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], JoinRequestStatus.SC_REVIEW)
        self.org.refresh_from_db()
        self.assertEqual(self.org.participation_status, ParticipationStatus.UNDER_REVIEW)

        response = self._decide(join_request_id, decision="APPROVED", assigned_team=2, notes="Welcome")
        self.assertEqual(response.status_code, 200)

        self.org.refresh_from_db()
        self.assertEqual(self.org.participation_status, ParticipationStatus.ACTIVE)
        self.assertEqual(self.org.membership_status, MembershipStatus.ACTIVE)
        self.assertEqual(self.org.regional_team, self.team)
        self.assertIsNotNone(self.org.joined_programme_at)

        admin_user = User.objects.get(email="musa@rfir.test")
        self.assertEqual(admin_user.role, UserRole.ANSP_ADMIN)
        self.assertEqual(admin_user.org_id, self.org.id)
        self.assertIn("Temporary password", mail.outbox[-1].body)
        self.assertTrue(AuditLog.objects.filter(action="APPROVE_JOIN_REQUEST").exists())

    def test_coordinator_cannot_decide(self):
        join_request_id = self._submit().json()["id"]
        self._review(join_request_id)
        response = self.client.post(
            f"/api/organizations/join-requests/{join_request_id}/sc-decision",
            data=json.dumps({"decision": "APPROVED", "assigned_team": 2}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 403)

    def test_decision_requires_sc_review_status(self):
        join_request_id = self._submit().json()["id"]
        response = self._decide(join_request_id, decision="APPROVED", assigned_team=2)
        self.assertEqual(response.status_code, 400)

    def test_approval_requires_team(self):
        join_request_id = self._submit().json()["id"]
        self._review(join_request_id)
        self.assertEqual(self._decide(join_request_id, decision="APPROVED").status_code, 400)

    def test_rejection(self):
        join_request_id = self._submit().json()["id"]
        self._review(join_request_id)
        self.assertEqual(self._decide(join_request_id, decision="REJECTED").status_code, 400)

        response = self._decide(join_request_id, decision="REJECTED", rejection_reason="No SMS in place yet")
        self.assertEqual(response.status_code, 200)
        self.org.refresh_from_db()
        self.assertEqual(self.org.participation_status, ParticipationStatus.REJECTED)
        self.assertIn("No SMS in place yet", mail.outbox[-1].body)

    def test_more_info_then_resubmitted_to_committee(self):
        join_request_id = self._submit().json()["id"]
        self._review(join_request_id)
        response = self._decide(join_request_id, decision="MORE_INFO",
                                additional_info_request="Please attach your SMS manual.")
        self.assertEqual(response.json()["status"], JoinRequestStatus.MORE_INFO)
        self.assertEqual(self._review(join_request_id).json()["status"], JoinRequestStatus.SC_REVIEW)

    def test_withdraw_resets_participation(self):
        join_request = services.submit_join_request(JoinRequestIn(
            organization_id=self.org.id, contact_name="Musa Kamara", contact_email="musa@rfir.test",
            contact_job_title="Safety Manager", motivation_statement=MOTIVATION,
        ))
        services.withdraw_join_request(join_request)
        self.org.refresh_from_db()
        self.assertEqual(self.org.participation_status, ParticipationStatus.REGISTERED)
        with self.assertRaises(ValueError):
            services.withdraw_join_request(join_request)

    def test_stats_and_eligible(self):
        other = Organization.objects.create(name_en="Other", name_fr="Autre", country="Mali", region="WACAF")
        self._submit()
        self.client.force_login(self.coordinator)
        stats = self.client.get("/api/organizations/join-requests/stats").json()
        self.assertEqual(stats, {"total": 1, "pending": 1, "approved": 0, "rejected": 0})

        eligible = self.client.get("/api/organizations/join-requests/eligible").json()
        self.assertEqual([o["id"] for o in eligible], [str(other.id)])

    def test_participation_status_for_own_org(self):
        self._submit()
        user = User.objects.create_user(username="rfir", role=UserRole.STAFF, org_id=self.org.id)
        self.client.force_login(user)
        data = self.client.get(f"/api/organizations/{self.org.id}/participation").json()
        self.assertEqual(data["participation_status"], ParticipationStatus.APPLIED)
        self.assertEqual(data["latest_request_status"], JoinRequestStatus.PENDING)

    def test_transition_table(self):
        self.assertTrue(services.can_transition_join_request("SC_REVIEW", "APPROVED"))
        self.assertFalse(services.can_transition_join_request("PENDING", "APPROVED"))
        self.assertFalse(services.can_transition_join_request("APPROVED", "WITHDRAWN"))
        self.assertEqual(JoinRequest.objects.count(), 0)
