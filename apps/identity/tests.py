import json
from uuid import uuid4

from django.test import TestCase, Client

from apps.governance.models import AuditLog
from apps.governance.audit_service import AuditAction
from .models import User, UserRole
from .permissions import (
    Permissions, ROLE_PERMISSIONS, get_user_permissions, has_feature, has_any_feature,
    is_programme_user,
)
from .jwt_auth import create_access_token, create_refresh_token, decode_token, get_user_id_from_token


class RBACTest(TestCase):
    def test_every_role_has_a_permission_list(self):
        for role in UserRole.values:
            self.assertIn(role, ROLE_PERMISSIONS)
            self.assertIn(Permissions.DASHBOARD, ROLE_PERMISSIONS[role])

    def test_only_steering_committee_and_super_admin_take_sc_decisions(self):
        holders = {
            role for role in UserRole.values
            if has_feature(role, Permissions.JOIN_REQUESTS_SC_DECISION)
        }
        self.assertEqual(holders, {UserRole.STEERING_COMMITTEE, UserRole.SUPER_ADMIN})

    def test_coordinator_schedules_reviews_but_has_no_system_settings(self):
        role = UserRole.PROGRAMME_COORDINATOR
        self.assertTrue(has_feature(role, Permissions.PEER_REVIEWS_SCHEDULE))
        self.assertTrue(has_feature(role, Permissions.ADMIN_LOGS))
        self.assertFalse(has_feature(role, Permissions.SETTINGS_SYSTEM))
        self.assertFalse(has_feature(role, Permissions.ADMIN_USERS))

    def test_steering_committee_cannot_schedule(self):
        self.assertFalse(has_feature(UserRole.STEERING_COMMITTEE, Permissions.PEER_REVIEWS_SCHEDULE))
        self.assertTrue(has_feature(UserRole.STEERING_COMMITTEE, Permissions.PEER_REVIEWS_ALL))

    def test_reviewers_see_assigned_work_only(self):
        for role in (UserRole.LEAD_REVIEWER, UserRole.PEER_REVIEWER):
            self.assertTrue(has_feature(role, Permissions.FINDINGS_CREATE))
            self.assertTrue(has_feature(role, Permissions.PEER_REVIEWS_ASSIGNED))
            self.assertFalse(has_feature(role, Permissions.PEER_REVIEWS_ALL))
        self.assertTrue(has_feature(UserRole.LEAD_REVIEWER, Permissions.REVIEWERS_EDIT))
        self.assertFalse(has_feature(UserRole.PEER_REVIEWER, Permissions.REVIEWERS_EDIT))

    def test_staff_permissions(self):
        user = User.objects.create_user(username="staff", password="pw", role=UserRole.STAFF, org_id=uuid4())
        perms = get_user_permissions(user)
        self.assertIn(Permissions.ASSESSMENTS_OWN, perms)
        self.assertNotIn(Permissions.CAPS_CREATE, perms)
        self.assertNotIn(Permissions.PEER_REVIEWS, perms)

    def test_inactive_user_has_no_permissions(self):
        user = User.objects.create_user(
            username="gone", password="pw", role=UserRole.SYSTEM_ADMIN, is_active=False
        )
        self.assertEqual(get_user_permissions(user), [])

    def test_has_any_feature(self):
        self.assertTrue(has_any_feature(UserRole.STAFF, [Permissions.ADMIN, Permissions.TRAINING]))
        self.assertFalse(has_any_feature(UserRole.STAFF, [Permissions.ADMIN, Permissions.CAPS]))
        self.assertFalse(has_feature("UNKNOWN", Permissions.DASHBOARD))

    def test_programme_user(self):
        sc = User(username="sc", role=UserRole.STEERING_COMMITTEE)
        staff = User(username="st", role=UserRole.STAFF)
        self.assertTrue(is_programme_user(sc))
        self.assertFalse(is_programme_user(staff))


class JWTTest(TestCase):
    def test_access_token_round_trip(self):
        user_id = uuid4()
        token = create_access_token(user_id, None, UserRole.PROGRAMME_COORDINATOR, "fr")
        payload = decode_token(token, expected_type='access')
        self.assertEqual(payload['sub'], str(user_id))
        self.assertIsNone(payload['org_id'])
        self.assertEqual(payload['locale'], "fr")

    def test_refresh_token_is_not_an_access_token(self):
        token = create_refresh_token(uuid4())
        self.assertIsNone(get_user_id_from_token(token))

    def test_garbage_token(self):
        self.assertIsNone(decode_token("not-a-token"))


class AuthAPITest(TestCase):
    def setUp(self):
        self.client = Client()
        self.org_id = uuid4()
        self.user = User.objects.create_user(
            username="amina", password="s3cret-pass", email="amina@ansp.test",
            role=UserRole.SAFETY_MANAGER, org_id=self.org_id,
        )

    def test_login_sets_cookies_and_audits(self):
        response = self.client.post(
            "/api/identity/login",
            data=json.dumps({"username": "amina", "password": "s3cret-pass"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn("access_token", response.cookies)
        self.assertIn("refresh_token", response.cookies)
        self.assertEqual(response.json()["user"]["role"], UserRole.SAFETY_MANAGER)
        self.assertTrue(
            AuditLog.objects.filter(action=AuditAction.LOGIN, target_id=self.user.id).exists()
        )

    def test_login_wrong_password(self):
        response = self.client.post(
            "/api/identity/login",
            data=json.dumps({"username": "amina", "password": "nope"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 401)

    def test_me_with_jwt_cookie(self):
        self.client.post(
            "/api/identity/login",
            data=json.dumps({"username": "amina", "password": "s3cret-pass"}),
            content_type="application/json",
        )
        response = self.client.get("/api/identity/me")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["username"], "amina")

    def test_me_requires_auth(self):
        self.assertEqual(self.client.get("/api/identity/me").status_code, 401)

    def test_refresh(self):
        self.client.post(
            "/api/identity/login",
            data=json.dumps({"username": "amina", "password": "s3cret-pass"}),
            content_type="application/json",
        )
        response = self.client.post("/api/identity/refresh")
        self.assertEqual(response.status_code, 200)
        self.assertIn("access_token", response.cookies)

    def test_update_own_locale(self):
        self.client.force_login(self.user)
        response = self.client.patch(
            "/api/identity/me",
            data=json.dumps({"locale": "fr", "email_notifications": False}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.user.refresh_from_db()
        self.assertEqual(self.user.locale, "fr")
        self.assertFalse(self.user.email_notifications)


class UserManagementAPITest(TestCase):
    def setUp(self):
        self.client = Client()
        self.org_id = uuid4()
        self.other_org_id = uuid4()
        self.ansp_admin = User.objects.create_user(
            username="ansp_admin", password="pw", role=UserRole.ANSP_ADMIN, org_id=self.org_id
        )
        self.coordinator = User.objects.create_user(
            username="coord", password="pw", role=UserRole.PROGRAMME_COORDINATOR
        )
        self.foreign_user = User.objects.create_user(
            username="foreign", password="pw", role=UserRole.STAFF, org_id=self.other_org_id
        )

    def _payload(self, **overrides):
        data = {
            "username": f"user_{uuid4().hex[:6]}",
            "email": "new@ansp.test",
            "password": "pw-123456",
            "first_name": "Kofi",
            "last_name": "Mensah",
            "role": UserRole.QUALITY_MANAGER,
        }
        data.update(overrides)
        return data

    def test_ansp_admin_creates_user_in_own_org(self):
        self.client.force_login(self.ansp_admin)
        response = self.client.post(
            "/api/identity/users",
            data=json.dumps(self._payload(org_id=str(self.other_org_id))),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["org_id"], str(self.org_id))

    def test_ansp_admin_cannot_create_programme_roles(self):
        self.client.force_login(self.ansp_admin)
        response = self.client.post(
            "/api/identity/users",
            data=json.dumps(self._payload(role=UserRole.PROGRAMME_COORDINATOR)),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 403)

    def test_ansp_admin_cannot_edit_other_org_user(self):
        self.client.force_login(self.ansp_admin)
        response = self.client.put(
            f"/api/identity/users/{self.foreign_user.id}",
            data=json.dumps({"first_name": "Changed"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 404)

    def test_coordinator_creates_user_in_any_org(self):
        self.client.force_login(self.coordinator)
        response = self.client.post(
            "/api/identity/users",
            data=json.dumps(self._payload(org_id=str(self.other_org_id))),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["org_id"], str(self.other_org_id))

    def test_participant_role_requires_org(self):
        self.client.force_login(self.coordinator)
        response = self.client.post(
            "/api/identity/users",
            data=json.dumps(self._payload()),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)

    def test_staff_cannot_list_users(self):
        self.client.force_login(self.foreign_user)
        self.assertEqual(self.client.get("/api/identity/users").status_code, 403)

    def test_list_users_scoped_to_own_org(self):
        self.client.force_login(self.ansp_admin)
        response = self.client.get("/api/identity/users")
        usernames = [u["username"] for u in response.json()]
        self.assertEqual(usernames, ["ansp_admin"])

    def test_deactivate_user(self):
        self.client.force_login(self.coordinator)
        response = self.client.delete(f"/api/identity/users/{self.foreign_user.id}")
        self.assertEqual(response.status_code, 204)
        self.foreign_user.refresh_from_db()
        self.assertFalse(self.foreign_user.is_active)
