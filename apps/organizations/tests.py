import json
from django.test import TestCase, Client
from apps.organizations.models import Organization, RegionalTeam, AfricanRegion
from apps.identity.models import User, UserRole
from apps.governance.models import AuditLog


def make_org(code, team=None, **extra):
    return Organization.objects.create(
        name_en=f"{code} Air Navigation",
        name_fr=f"Navigation aérienne {code}",
        organization_code=code,
        country="Senegal",
        region=AfricanRegion.WACAF,
        regional_team=team,
        **extra,
    )


class MultiTenancyTest(TestCase):
    def setUp(self):
        self.client = Client()
        self.team = RegionalTeam.objects.create(team_number=1, code="T1", name_en="Team 1", name_fr="Équipe 1")
        self.org_a = make_org("ORGA", self.team)
        self.org_b = make_org("ORGB", self.team)
        self.admin_a = User.objects.create_user(username="admin_a", role=UserRole.ANSP_ADMIN, org_id=self.org_a.id)
        self.staff_a = User.objects.create_user(username="staff_a", role=UserRole.STAFF, org_id=self.org_a.id)
        self.coordinator = User.objects.create_user(username="coord", role=UserRole.PROGRAMME_COORDINATOR)

    def test_participant_sees_only_own_organization(self):
        self.client.force_login(self.staff_a)
        data = self.client.get("/api/organizations/").json()
        self.assertEqual([o["id"] for o in data], [str(self.org_a.id)])

    def test_programme_user_sees_all(self):
        self.client.force_login(self.coordinator)
        data = self.client.get("/api/organizations/").json()
        self.assertEqual(len(data), 2)

    def test_cannot_view_other_organization(self):
        self.client.force_login(self.staff_a)
        response = self.client.get(f"/api/organizations/{self.org_b.id}")
        self.assertEqual(response.status_code, 403)
        response = self.client.get(f"/api/organizations/{self.org_a.id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["organization_code"], "ORGA")

    def test_ansp_admin_edits_own_organization_only(self):
        self.client.force_login(self.admin_a)
        response = self.client.patch(
            f"/api/organizations/{self.org_a.id}",
            data=json.dumps({"name_fr": "ASECNA Sénégal"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        self.org_a.refresh_from_db()
        self.assertEqual(self.org_a.name_fr, "ASECNA Sénégal")
        self.assertTrue(AuditLog.objects.filter(target_id=self.org_a.id, action="UPDATE_ORGANIZATION").exists())

        response = self.client.patch(
            f"/api/organizations/{self.org_b.id}",
            data=json.dumps({"name_fr": "Intrus"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 403)

    def test_staff_cannot_edit(self):
        self.client.force_login(self.staff_a)
        response = self.client.patch(
            f"/api/organizations/{self.org_a.id}",
            data=json.dumps({"name_fr": "X"}),
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 403)

    def test_create_organization_permission(self):
        payload = {
            "name_en": "New ANSP", "name_fr": "Nouveau ANSP", "country": "Ghana", "region": "WACAF",
        }
        self.client.force_login(self.staff_a)
        response = self.client.post("/api/organizations/", payload, content_type="application/json")
        self.assertEqual(response.status_code, 403)

        self.client.force_login(self.coordinator)
        response = self.client.post("/api/organizations/", payload, content_type="application/json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Organization.objects.count(), 3)

    def test_list_teams(self):
        self.client.force_login(self.staff_a)
        data = self.client.get("/api/organizations/teams").json()
        self.assertEqual(data[0]["team_number"], 1)

    def test_tenant_header_switch_for_programme_users(self):
        self.client.force_login(self.coordinator)
        response = self.client.get(
            f"/api/organizations/{self.org_b.id}", HTTP_X_ORGANIZATION_ID=str(self.org_b.id)
        )
        self.assertEqual(response.status_code, 200)
