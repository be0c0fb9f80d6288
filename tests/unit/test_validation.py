import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from traveller.application.services.validation import (
    background_points_available,
    expected_age,
    get_character_progress,
    validate_attributes,
    validate_background_skills,
    validate_career_selection,
    validate_complete_character,
    validate_species,
)
from traveller.domain.models.character import CareerStint, Character


def _rolled(**overrides) -> Character:
    attributes = {"STR": 7, "DEX": 8, "END": 6, "INT": 9, "EDU": 10, "SOC": 5}
    attributes.update(overrides)
    return Character(name="Wen", attributes=attributes)


class AttributeValidationTests(unittest.TestCase):
    def test_valid_attributes(self) -> None:
        self.assertTrue(validate_attributes(_rolled().attributes).valid)

    def test_out_of_range_and_missing(self) -> None:
        result = validate_attributes({"STR": 0, "DEX": 19, "END": 7, "INT": 7, "EDU": 7})
        self.assertFalse(result.valid)
        self.assertEqual(3, len(result.issues))
        self.assertTrue(result.issues[0].startswith("STR"))

    def test_booleans_are_rejected(self) -> None:
        attributes = dict(_rolled().attributes, SOC=True)
        self.assertFalse(validate_attributes(attributes).valid)


class SelectionValidationTests(unittest.TestCase):
    def test_species(self) -> None:
        self.assertTrue(validate_species("Aslan").valid)
        self.assertFalse(validate_species("Droyne").valid)
        self.assertTrue(validate_species("Droyne", known=["Droyne"]).valid)

    def test_background_points_follow_edu(self) -> None:
        self.assertEqual(4, background_points_available(10))
        self.assertEqual(2, background_points_available(4))
        self.assertFalse(validate_background_skills({"Admin": 1, "Carouse": 1, "Medic": 1}, -1).valid)
        self.assertTrue(validate_background_skills({"Admin": 1, "Pilot": 3}, 0).valid)

    def test_career_selection(self) -> None:
        self.assertEqual(["No career selected"], validate_career_selection(_rolled(), "").issues)
        blank = Character()
        self.assertEqual(
            ["Character attributes must be set before selecting career"],
            validate_career_selection(blank, "Army").issues,
        )


class CompleteCharacterTests(unittest.TestCase):
    def test_age_must_match_terms_served(self) -> None:
        character = _rolled()
        character.career_history = [CareerStint(career="Army", terms=2), CareerStint(career="Drifter", terms=1)]
        character.age = 30
        self.assertEqual(30, expected_age(character))
        self.assertTrue(validate_complete_character(character).valid)

        character.age = 34
        result = validate_complete_character(character)
        self.assertEqual(["Age inconsistency: expected 30, got 34"], result.issues)

    def test_character_without_career_is_incomplete(self) -> None:
        self.assertIn("Character must have at least one career", validate_complete_character(_rolled()).issues)

    def test_progress_counts_completed_steps(self) -> None:
        character = _rolled()
        character.attributes_locked = True
        progress = get_character_progress(character)
        completed = [step.id for step in progress.steps if step.completed]
        self.assertEqual(["species", "attributes", "mustering"], completed)
        self.assertEqual(50, progress.progress_percentage)
        self.assertFalse(progress.is_complete)


if __name__ == "__main__":
    unittest.main()
