from datetime import date

from django.test import SimpleTestCase

from core.exceptions import ValidationError
from projects.entities import CustomField
from projects.validation import (
    apply_custom_field_values,
    cast_custom_value,
    clean_custom_field_data,
    clean_project_data,
    clean_task_data,
    normalize_custom_value,
)


class TaskValidationTests(SimpleTestCase):
    def test_end_before_start_is_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            clean_task_data({"name": "T", "start_date": "2025-02-10", "end_date": "2025-02-01"})
        self.assertIn("end_date", ctx.exception.details)

    def test_same_day_is_allowed(self):
        cleaned = clean_task_data({"name": "T", "start_date": "2025-02-10", "end_date": "2025-02-10"})
        self.assertEqual(cleaned["start_date"], date(2025, 2, 10))

    def test_defaults_on_create(self):
        cleaned = clean_task_data({"name": "  Write docs  "})
        self.assertEqual(cleaned["name"], "Write docs")
        self.assertEqual(cleaned["task_type"], "task")
        self.assertEqual(cleaned["status"], "not-started")
        self.assertEqual(cleaned["progress"], 0)
        self.assertEqual(cleaned["dependencies"], [])

    def test_progress_is_clamped(self):
        self.assertEqual(clean_task_data({"name": "T", "progress": 140})["progress"], 100)
        self.assertEqual(clean_task_data({"name": "T", "progress": -3})["progress"], 0)

    def test_non_finite_progress_rejected(self):
        for value in ("1e400", float("inf"), float("nan")):
            with self.assertRaises(ValidationError):
                clean_task_data({"name": "T", "progress": value})

    def test_missing_name_rejected(self):
        with self.assertRaises(ValidationError):
            clean_task_data({"name": "   "})

    def test_unknown_status_rejected(self):
        with self.assertRaises(ValidationError):
            clean_task_data({"name": "T", "status": "paused"})

    def test_partial_only_touches_given_keys(self):
        self.assertEqual(clean_task_data({"progress": 30}, partial=True), {"progress": 30})

    def test_project_team_members_deduplicated(self):
        cleaned = clean_project_data({"name": "P", "team_members": ["1", 2, "1"]})
        self.assertEqual(cleaned["team_members"], ["1", "2"])
        self.assertEqual(cleaned["status"], "active")


class CustomFieldContractTests(SimpleTestCase):
    def test_normalised_text_per_type(self):
        self.assertEqual(normalize_custom_value("number", "007"), "7")
        self.assertEqual(normalize_custom_value("number", 2.50), "2.5")
        self.assertEqual(normalize_custom_value("date", "2025-03-04T10:00:00"), "2025-03-04")
        self.assertEqual(normalize_custom_value("boolean", True), "true")
        self.assertEqual(normalize_custom_value("boolean", "No"), "false")
        self.assertEqual(normalize_custom_value("select", "High", ["Low", "High"]), "High")
        self.assertEqual(normalize_custom_value("text", "  hi "), "hi")

    def test_values_that_do_not_fit_are_rejected(self):
        for field_type, value in [("number", "ten"), ("date", "tomorrow"), ("boolean", "maybe")]:
            with self.assertRaises(ValidationError):
                normalize_custom_value(field_type, value)
        with self.assertRaises(ValidationError):
            normalize_custom_value("select", "Urgent", ["Low", "High"])

    def test_read_side_cast(self):
        self.assertEqual(cast_custom_value("number", "7"), 7)
        self.assertEqual(cast_custom_value("number", "2.5"), 2.5)
        self.assertEqual(cast_custom_value("date", "2025-03-04"), date(2025, 3, 4))
        self.assertIs(cast_custom_value("boolean", "false"), False)
        self.assertIsNone(cast_custom_value("number", None))

    def test_select_needs_options(self):
        with self.assertRaises(ValidationError):
            clean_custom_field_data({"name": "Priority", "field_type": "select"})

    def test_default_checked_against_type(self):
        with self.assertRaises(ValidationError):
            clean_custom_field_data({"name": "Budget", "field_type": "number", "default_value": "lots"})
        cleaned = clean_custom_field_data({"name": "Budget", "field_type": "number", "default_value": 1000})
        self.assertEqual(cleaned["default_value"], "1000")

    def test_type_change_revalidates_existing_default(self):
        existing = CustomField(id="f1", project_id="p1", name="Flag", field_type="text", default_value="abc")
        with self.assertRaises(ValidationError):
            clean_custom_field_data({"field_type": "number"}, partial=True, existing=existing)

    def test_required_field_takes_default_or_fails(self):
        fields = [
            CustomField(id="f1", project_id="p1", name="Priority", field_type="select",
                        required=True, options=["Low", "High"], default_value="Low"),
            CustomField(id="f2", project_id="p1", name="Estimate", field_type="number"),
        ]
        self.assertEqual(apply_custom_field_values({"f2": "3"}, fields), {"f1": "Low", "f2": "3"})

        fields[0].default_value = None
        with self.assertRaises(ValidationError):
            apply_custom_field_values({}, fields)
