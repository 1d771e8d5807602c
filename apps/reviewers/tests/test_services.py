"""
Reviewer profiles: creation on role assignment, editing rights, lead
qualification, expertise and languages, and matching against a review.
"""
from datetime import date

from apps.governance.audit_service import AuditAction
from apps.governance.models import AuditLog
from apps.reviewers import services
from apps.reviewers.models import (
    ReviewerProfile, ReviewerAvailability, SelectionStatus, ExpertiseArea, ProficiencyLevel, Language,
    LanguageProficiency,
)
from apps.reviewers.schemas import ProfileUpdateIn, ExpertiseIn, LanguageIn, AvailabilityIn
from apps.reviews.models import LanguagePreference
from apps.reviews.tests.test_services import ReviewTestBase


class ProfileTest(ReviewTestBase):
    def test_reviewer_roles_get_a_profile(self):
        self.assertTrue(self.lead.reviewer_profile.is_lead_qualified)
        self.assertEqual(self.lead.reviewer_profile.selection_status, SelectionStatus.SELECTED)
        self.assertFalse(self.peer.reviewer_profile.is_lead_qualified)
        self.assertFalse(ReviewerProfile.objects.filter(user=self.coordinator).exists())

        self.peer.first_name = "Ama"
        self.peer.save()
        self.assertEqual(ReviewerProfile.objects.filter(user=self.peer).count(), 1)

    def test_who_can_edit(self):
        lead_profile = self.lead.reviewer_profile
        self.assertTrue(services.can_edit_profile(self.lead, lead_profile))
        self.assertFalse(services.can_edit_profile(self.lead, self.peer.reviewer_profile))
        self.assertFalse(services.can_edit_profile(self.peer, self.peer.reviewer_profile))
        self.assertTrue(services.can_edit_profile(self.coordinator, lead_profile))

        self.assertEqual(services.visible_profiles(self.peer).count(), 3)
        self.assertEqual(services.visible_profiles(self.host_staff).count(), 0)

    def test_selection_is_for_approvers(self):
        profile = self.lead.reviewer_profile
        services.update_profile(profile, ProfileUpdateIn(is_available=False, years_experience=9), self.lead)
        profile.refresh_from_db()
        self.assertFalse(profile.is_available)
        self.assertEqual(profile.years_experience, 9)

        with self.assertRaises(PermissionError):
            services.update_profile(profile, ProfileUpdateIn(selection_status=SelectionStatus.INACTIVE), self.lead)
        with self.assertRaisesMessage(ValueError, "Unknown selection status"):
            services.update_profile(profile, ProfileUpdateIn(selection_status="RETIRED"), self.coordinator)

        services.update_profile(profile, ProfileUpdateIn(selection_status=SelectionStatus.INACTIVE), self.coordinator)
        self.assertEqual(profile.selection_status, SelectionStatus.INACTIVE)
        self.assertTrue(AuditLog.objects.filter(
            action=AuditAction.UPDATE_REVIEWER_PROFILE, target_id=profile.id, performed_by=self.coordinator,
        ).exists())

    def test_lead_qualification(self):
        profile = self.peer.reviewer_profile
        with self.assertRaises(PermissionError):
            services.set_lead_qualification(profile, True, self.lead)
        with self.assertRaisesMessage(ValueError, "at least 3 completed reviews"):
            services.set_lead_qualification(profile, True, self.coordinator)

        profile.reviews_completed = 3
        profile.save()
        services.set_lead_qualification(profile, True, self.coordinator)
        self.assertTrue(ReviewerProfile.objects.get(id=profile.id).is_lead_qualified)

        profile.selection_status = SelectionStatus.NOMINATED
        profile.save()
        with self.assertRaisesMessage(ValueError, "Only selected reviewers"):
            services.set_lead_qualification(profile, True, self.coordinator)
        services.set_lead_qualification(profile, False, self.coordinator)
        self.assertFalse(profile.is_lead_qualified)


class ExpertiseAndLanguageTest(ReviewTestBase):
    def test_expertise_is_replaced(self):
        profile = self.peer.reviewer_profile
        services.set_expertise(profile, [ExpertiseIn(area=ExpertiseArea.ATS)], self.peer)
        services.set_expertise(profile, [
            ExpertiseIn(area=ExpertiseArea.MET, proficiency_level=ProficiencyLevel.EXPERT),
            ExpertiseIn(area=ExpertiseArea.CNS),
        ], self.peer)

        self.assertEqual(
            sorted(profile.expertise.values_list('area', flat=True)), [ExpertiseArea.CNS, ExpertiseArea.MET]
        )

    def test_expertise_validation(self):
        profile = self.peer.reviewer_profile
        with self.assertRaisesMessage(ValueError, "only be listed once"):
            services.set_expertise(profile, [ExpertiseIn(area="ATS"), ExpertiseIn(area="ATS")], self.peer)
        with self.assertRaisesMessage(ValueError, "Unknown expertise areas: PILOTING"):
            services.set_expertise(profile, [ExpertiseIn(area="PILOTING")], self.peer)

    def test_languages(self):
        profile = self.peer.reviewer_profile
        services.set_languages(profile, [
            LanguageIn(language=Language.EN, proficiency=LanguageProficiency.NATIVE, can_conduct_interviews=True),
        ], self.peer)
        self.assertTrue(profile.languages.get().can_conduct_interviews)

        with self.assertRaisesMessage(ValueError, "only be listed once"):
            services.set_languages(profile, [LanguageIn(language="FR"), LanguageIn(language="FR")], self.peer)
        with self.assertRaisesMessage(ValueError, "Unknown languages: XX"):
            services.set_languages(profile, [LanguageIn(language="XX")], self.peer)
        self.assertEqual(profile.languages.count(), 1)

    def test_availability_dates(self):
        profile = self.peer.reviewer_profile
        with self.assertRaises(ValueError):
            services.add_availability(profile, AvailabilityIn(start_date=date(2025, 6, 6), end_date=date(2025, 6, 2)))
        services.add_availability(profile, AvailabilityIn(start_date=date(2025, 6, 2), end_date=date(2025, 6, 6)))
        self.assertEqual(ReviewerAvailability.objects.filter(profile=profile).count(), 1)


class MatchingServiceTest(ReviewTestBase):
    def setUp(self):
        super().setUp()
        self.review = self.make_review()
        self.review.planned_start_date = date(2025, 6, 2)
        self.review.planned_end_date = date(2025, 6, 6)
        self.review.areas_in_scope = [ExpertiseArea.ATS, "Safety culture"]
        self.review.language_preference = LanguagePreference.EN
        self.review.save()

        self.equip(self.lead, ProficiencyLevel.EXPERT, LanguageProficiency.NATIVE)
        self.equip(self.peer, ProficiencyLevel.COMPETENT, LanguageProficiency.ADVANCED)
        self.equip(self.peer2, None, LanguageProficiency.NATIVE)

    def equip(self, user, proficiency, language_proficiency):
        profile = user.reviewer_profile
        if proficiency:
            services.set_expertise(profile, [ExpertiseIn(area=ExpertiseArea.ATS, proficiency_level=proficiency)], user)
        services.set_languages(profile, [
            LanguageIn(language=Language.EN, proficiency=language_proficiency, can_conduct_interviews=True),
        ], user)
        services.add_availability(profile, AvailabilityIn(start_date=date(2025, 6, 1), end_date=date(2025, 6, 10)))

    def test_criteria_come_from_the_review(self):
        criteria = services.criteria_for_review(self.review)

        self.assertEqual(criteria.target_org_id, self.host.id)
        self.assertEqual(criteria.required_expertise, [ExpertiseArea.ATS])
        self.assertEqual(criteria.required_languages, [Language.EN])
        self.assertEqual(criteria.team_size, 4)
        self.assertEqual(criteria.exclude, [])

        self.review.language_preference = LanguagePreference.BOTH
        self.add_member(self.review, self.lead)
        criteria = services.criteria_for_review(self.review, required_expertise=None, team_size=3)
        self.assertEqual(criteria.required_languages, [Language.EN, Language.FR])
        self.assertEqual(criteria.required_expertise, [ExpertiseArea.ATS])
        self.assertEqual(criteria.exclude, [self.lead.reviewer_profile.id])
        self.assertEqual(criteria.team_size, 3)

    def test_requested_dates_are_the_fallback(self):
        self.review.planned_start_date = self.review.planned_end_date = None
        self.review.requested_start_date = date(2025, 9, 1)
        self.review.requested_end_date = date(2025, 9, 5)
        self.assertEqual(services.criteria_for_review(self.review).start_date, date(2025, 9, 1))

        self.review.requested_end_date = None
        with self.assertRaisesMessage(ValueError, "planned or requested dates"):
            services.criteria_for_review(self.review)

    def test_matches_are_ranked(self):
        results = services.match_reviewers_for_review(self.review)

        self.assertEqual([r.candidate.full_name for r in results], ["lead", "peer", "peer2"])
        self.assertEqual([r.is_eligible for r in results], [True, True, False])
        self.assertEqual(results[0].candidate.organization, self.other.name_en)

    def test_unavailable_and_unselected_reviewers_are_not_candidates(self):
        ReviewerProfile.objects.filter(user=self.peer).update(is_available=False)
        ReviewerProfile.objects.filter(user=self.peer2).update(selection_status=SelectionStatus.NOMINATED)

        results = services.match_reviewers_for_review(self.review)
        self.assertEqual([r.candidate.full_name for r in results], ["lead"])

    def test_suggested_team(self):
        team = services.suggest_team(self.review, team_size=2)

        self.assertEqual([m.candidate.full_name for m in team.team], ["lead", "peer"])
        self.assertTrue(team.is_viable)
        self.assertTrue(team.coverage.has_lead_qualified)
