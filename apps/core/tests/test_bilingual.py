from datetime import date
from types import SimpleNamespace

from django.test import SimpleTestCase

from apps.core.bilingual import BilingualLabel, normalize_locale, pick, localized_field, format_date_range


class BilingualTest(SimpleTestCase):
    def test_normalize_locale(self):
        self.assertEqual(normalize_locale("FR"), "fr")
        self.assertEqual(normalize_locale("fr-CA"), "fr")
        self.assertEqual(normalize_locale("pt"), "en")
        self.assertEqual(normalize_locale(None), "en")

    def test_french_falls_back_to_english(self):
        self.assertEqual(pick("Finding", "Constatation", "fr"), "Constatation")
        self.assertEqual(pick("Finding", "", "fr"), "Finding")
        self.assertEqual(pick(None, "Constatation", "en"), "Constatation")

        obj = SimpleNamespace(title_en="Report", title_fr=None)
        self.assertEqual(localized_field(obj, "title", "fr"), "Report")
        self.assertEqual(BilingualLabel("Open", "Ouvert").get("fr"), "Ouvert")

    def test_date_ranges(self):
        self.assertEqual(format_date_range(date(2025, 3, 3), date(2025, 3, 7)), "March 3 - 7, 2025")
        self.assertEqual(format_date_range(date(2025, 3, 3), date(2025, 3, 7), "fr"), "3 - 7 mars 2025")
        self.assertEqual(
            format_date_range(date(2025, 3, 30), date(2025, 4, 2), "fr"), "30 mars 2025 - 2 avril 2025"
        )
        self.assertEqual(format_date_range(None, date(2025, 8, 1), "fr"), "1 août 2025")
        self.assertEqual(format_date_range(None, None), "")
