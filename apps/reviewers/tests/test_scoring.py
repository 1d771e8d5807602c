"""
Reviewer match scoring: expertise, language, availability and experience
components and the total out of 100.
"""
from datetime import date

from django.test import SimpleTestCase

from apps.reviewers.dtos import ExpertiseInput, LanguageInput, AvailabilitySlot
from apps.reviewers.models import ExpertiseArea, ProficiencyLevel, Language, LanguageProficiency, AvailabilityType
from apps.reviewers.scoring import (
    score_expertise, score_language, score_availability, score_experience, calculate_total_score,
)

START = date(2025, 6, 2)
END = date(2025, 6, 6)


class ExpertiseScoreTest(SimpleTestCase):
    def test_required_and_preferred_weighted_by_proficiency(self):
        expertise = [
            ExpertiseInput(ExpertiseArea.ATS, ProficiencyLevel.EXPERT),
            ExpertiseInput(ExpertiseArea.MET, ProficiencyLevel.BASIC),
            ExpertiseInput(ExpertiseArea.CNS, ProficiencyLevel.PROFICIENT),
        ]
        result = score_expertise(expertise, [ExpertiseArea.ATS, ExpertiseArea.MET], [ExpertiseArea.CNS])

        self.assertEqual(result.score, 37.0)
        self.assertEqual(result.matched_required, [ExpertiseArea.ATS, ExpertiseArea.MET])
        self.assertEqual(result.matched_preferred, [ExpertiseArea.CNS])
        self.assertEqual(result.missing_required, [])

    def test_expert_bonus_is_capped(self):
        result = score_expertise([ExpertiseInput(ExpertiseArea.ATS, ProficiencyLevel.EXPERT)], [ExpertiseArea.ATS])
        self.assertEqual(result.score, 30.0)

    def test_missing_areas(self):
        result = score_expertise([], [ExpertiseArea.ATS])
        self.assertEqual(result.score, 0)
        self.assertEqual(result.missing_required, [ExpertiseArea.ATS])

    def test_nothing_required_scores_full(self):
        self.assertEqual(score_expertise([], []).score, 40)


class LanguageScoreTest(SimpleTestCase):
    def test_native_interviewer_scores_full(self):
        result = score_language([LanguageInput(Language.EN, LanguageProficiency.NATIVE, True)], [Language.EN])
        self.assertEqual(result.score, 25.0)
        self.assertTrue(result.can_conduct_review)

    def test_basic_proficiency_cannot_conduct_review(self):
        languages = [
            LanguageInput(Language.EN, LanguageProficiency.NATIVE, True),
            LanguageInput(Language.FR, LanguageProficiency.BASIC),
        ]
        result = score_language(languages, [Language.EN, Language.FR])

        self.assertEqual(result.score, 20.8)
        self.assertEqual(result.matched_languages, [Language.EN, Language.FR])
        self.assertFalse(result.can_conduct_review)

    def test_missing_language(self):
        result = score_language([LanguageInput(Language.EN, LanguageProficiency.ADVANCED)], [Language.EN, Language.FR])
        self.assertEqual(result.missing_languages, [Language.FR])
        self.assertFalse(result.can_conduct_review)


class AvailabilityScoreTest(SimpleTestCase):
    def test_tentative_days_count_half_and_later_slots_win(self):
        slots = [
            AvailabilitySlot(date(2025, 6, 1), date(2025, 6, 10), AvailabilityType.AVAILABLE),
            AvailabilitySlot(date(2025, 6, 5), date(2025, 6, 6), AvailabilityType.TENTATIVE),
        ]
        result = score_availability(slots, START, END)

        self.assertEqual(result.total_days, 5)
        self.assertEqual(result.available_days, 4.0)
        self.assertEqual(result.coverage, 0.8)
        self.assertEqual(result.score, 20.0)

    def test_days_without_a_slot_are_unavailable(self):
        slots = [AvailabilitySlot(date(2025, 6, 2), date(2025, 6, 3), AvailabilityType.AVAILABLE)]
        self.assertEqual(score_availability(slots, START, END).coverage, 0.4)

    def test_assignments_are_reported(self):
        slots = [
            AvailabilitySlot(START, END, AvailabilityType.AVAILABLE),
            AvailabilitySlot(END, END, AvailabilityType.ON_ASSIGNMENT, "ICAO audit"),
        ]
        result = score_availability(slots, START, END)
        self.assertEqual(result.conflicts, ["ICAO audit"])
        self.assertEqual(result.score, 20.0)

    def test_reversed_period_scores_zero(self):
        result = score_availability([AvailabilitySlot(START, END, AvailabilityType.AVAILABLE)], END, START)
        self.assertEqual(result.score, 0)
        self.assertEqual(result.total_days, 5)


class ExperienceScoreTest(SimpleTestCase):
    def test_bands(self):
        self.assertEqual(score_experience(12, 6).score, 6.0)
        self.assertEqual(score_experience(20, 12).score, 10.0)
        self.assertEqual(score_experience(2, 1).score, 0.5)

    def test_interpolation_between_bands(self):
        result = score_experience(7, 3)
        self.assertEqual(result.years_bonus, 1.8)
        self.assertEqual(result.reviews_bonus, 1.7)
        self.assertEqual(result.score, 3.5)


class TotalScoreTest(SimpleTestCase):
    def test_components_add_up(self):
        expertise = score_expertise(
            [ExpertiseInput(ExpertiseArea.ATS, ProficiencyLevel.EXPERT),
             ExpertiseInput(ExpertiseArea.MET, ProficiencyLevel.BASIC),
             ExpertiseInput(ExpertiseArea.CNS, ProficiencyLevel.PROFICIENT)],
            [ExpertiseArea.ATS, ExpertiseArea.MET], [ExpertiseArea.CNS],
        )
        language = score_language(
            [LanguageInput(Language.EN, LanguageProficiency.NATIVE, True),
             LanguageInput(Language.FR, LanguageProficiency.BASIC)],
            [Language.EN, Language.FR],
        )
        availability = score_availability(
            [AvailabilitySlot(date(2025, 6, 1), date(2025, 6, 10), AvailabilityType.AVAILABLE),
             AvailabilitySlot(date(2025, 6, 5), date(2025, 6, 6), AvailabilityType.TENTATIVE)],
            START, END,
        )
        total = calculate_total_score(expertise, language, availability, score_experience(12, 6))

        self.assertEqual(total.total_score, 83.8)
        self.assertEqual(total.max_possible_score, 100)
        self.assertEqual(total.percentage, 84)
