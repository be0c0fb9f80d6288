import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from traveller.application.services.character_store import Action, ActionType, apply, is_duplicate_event
from traveller.domain.models.character import Character, new_character


def _base() -> Character:
    character = new_character()
    return apply(character, Action(ActionType.SET_ATTRIBUTES, {"STR": 8, "DEX": 8, "END": 8, "INT": 7, "EDU": 9, "SOC": 6}))


class CharacterStoreTests(unittest.TestCase):
    def test_apply_never_mutates_its_input(self) -> None:
        character = _base()
        updated = apply(character, Action(ActionType.ADD_SKILL, {"skill": "Pilot", "level": 1}))
        self.assertEqual({}, character.skills)
        self.assertEqual({"Pilot": 1}, updated.skills)
        self.assertIsNot(character, updated)

    def test_damage_max_tracks_physical_attributes(self) -> None:
        character = _base()
        self.assertEqual(24, character.damage.max)
        updated = apply(character, Action(ActionType.UPDATE_ATTRIBUTE, {"attribute": "STR", "value": 12}))
        self.assertEqual(28, updated.damage.max)
        reduced = apply(updated, Action(ActionType.REDUCE_ATTRIBUTE, {"attribute": "end", "amount": 3}))
        self.assertEqual(5, reduced.attributes["END"])
        self.assertEqual(25, reduced.damage.max)

    def test_update_damage_only_changes_current(self) -> None:
        updated = apply(_base(), Action(ActionType.UPDATE_DAMAGE, {"current": 5, "max": 99}))
        self.assertEqual(5, updated.damage.current)
        self.assertEqual(24, updated.damage.max)

    def test_add_skill_stacks_and_update_skill_replaces(self) -> None:
        character = apply(_base(), Action(ActionType.ADD_SKILL, {"skill": "Admin", "level": 1}))
        character = apply(character, Action(ActionType.ADD_SKILL, {"skill": "Admin"}))
        self.assertEqual(2, character.skills["Admin"])
        character = apply(character, Action(ActionType.UPDATE_SKILL, {"skill": "Admin", "level": 0}))
        self.assertNotIn("Admin", character.skills)

    def test_start_and_end_in_same_term_zero_adds_no_age(self) -> None:
        character = apply(_base(), Action(ActionType.START_CAREER, {"career": "Scout", "term": 0}))
        ended = apply(character, Action(ActionType.END_CAREER))
        self.assertEqual(18, ended.age)
        self.assertIsNone(ended.current_career)
        self.assertEqual(0, ended.career_history[-1].terms)

    def test_end_career_records_terms_and_ages(self) -> None:
        character = apply(_base(), Action(ActionType.START_CAREER, {"career": "Scout", "assignment": "Courier"}))
        self.assertEqual(1, character.current_term)
        self.assertEqual(18, character.career_history[-1].start_age)
        character = apply(character, Action(ActionType.ADVANCE_TERM))
        self.assertEqual(22, character.age)
        ended = apply(character, Action(ActionType.END_CAREER, {"forfeit_benefits": True}))
        self.assertEqual(2, ended.career_history[-1].terms)
        self.assertTrue(ended.career_history[-1].benefits_forfeited)
        self.assertEqual(0, ended.current_term)

    def test_start_career_rejected_while_another_is_open(self) -> None:
        character = apply(_base(), Action(ActionType.START_CAREER, {"career": "Scout"}))
        again = apply(character, Action(ActionType.START_CAREER, {"career": "Navy"}))
        self.assertEqual("Scout", again.current_career)
        self.assertEqual(1, len(again.career_history))

    def test_duplicate_events_are_suppressed(self) -> None:
        character = apply(_base(), Action(ActionType.START_CAREER, {"career": "Scout"}))
        event = {"type": "event", "description": "Shipwrecked"}
        character = apply(character, Action(ActionType.ADD_CAREER_EVENT, event))
        character = apply(character, Action(ActionType.ADD_CAREER_EVENT, event))
        self.assertEqual(1, len(character.career_history[-1].events))

        survival = {"type": "survival", "success": True, "roll": 9, "target": 7}
        character = apply(character, Action(ActionType.ADD_CAREER_EVENT, survival))
        character = apply(character, Action(ActionType.ADD_CAREER_EVENT, dict(survival, roll=10)))
        self.assertEqual(3, len(character.career_history[-1].events))

    def test_duplicate_check_compares_term(self) -> None:
        first = {"term": 1, "type": "event", "description": "Shipwrecked"}
        self.assertTrue(is_duplicate_event(first, dict(first)))
        self.assertFalse(is_duplicate_event(first, dict(first, term=2)))

    def test_promote_and_commission(self) -> None:
        character = apply(_base(), Action(ActionType.START_CAREER, {"career": "Army"}))
        character = apply(character, Action(ActionType.PROMOTE, {"rank_title": "Corporal"}))
        self.assertEqual(1, character.open_stint.rank)
        character = apply(character, Action(ActionType.COMMISSION, {"rank_title": "Lieutenant"}))
        self.assertTrue(character.open_stint.commissioned)
        self.assertEqual(1, character.open_stint.rank)
        again = apply(character, Action(ActionType.COMMISSION, {"rank_title": "Captain"}))
        self.assertEqual("Lieutenant", again.open_stint.rank_title)

    def test_money_never_drops_below_zero(self) -> None:
        character = apply(_base(), Action(ActionType.UPDATE_MONEY, 5000))
        character = apply(character, Action(ActionType.UPDATE_MONEY, -8000))
        self.assertEqual(0, character.money)

    def test_benefit_roll_bookkeeping(self) -> None:
        character = apply(_base(), Action(ActionType.ADD_BENEFIT_ROLLS, -2))
        self.assertEqual(0, character.benefit_rolls)
        character = apply(character, Action(ActionType.ADD_BENEFIT_ROLLS, 2))
        character = apply(character, Action(ActionType.SET_BENEFIT_DM, 1))
        character = apply(character, Action(ActionType.RESOLVE_BENEFIT_ROLL))
        self.assertEqual(1, character.benefit_rolls)
        self.assertEqual(0, character.temp_modifiers.benefit_dm)

    def test_relationships_and_gear_are_appended(self) -> None:
        character = _base()
        for action_type, value in (
            (ActionType.ADD_CONTACT, "Dock boss"),
            (ActionType.ADD_ALLY, "Old crewmate"),
            (ActionType.ADD_ENEMY, "Pirate captain"),
            (ActionType.ADD_RIVAL, "Academy rival"),
            (ActionType.ADD_GEAR, "Vacc suit"),
            (ActionType.ADD_CYBERWARE, "Neural comm"),
        ):
            character = apply(character, Action(action_type, value))
        self.assertEqual(["Dock boss"], character.contacts)
        self.assertEqual(["Pirate captain"], character.enemies)
        self.assertEqual(["Vacc suit"], character.gear)
        self.assertEqual(["Neural comm"], character.cyberware)

    def test_unknown_action_returns_state_unchanged(self) -> None:
        character = _base()
        with self.assertLogs("traveller.application.services.character_store", level="WARNING"):
            result = apply(character, Action("NOT_AN_ACTION", {}))
        self.assertIs(character, result)

    def test_reset_and_load(self) -> None:
        character = apply(_base(), Action(ActionType.SET_NAME, "Kiera"))
        reset = apply(character, Action(ActionType.RESET_CHARACTER))
        self.assertEqual("", reset.name)
        loaded = apply(reset, Action(ActionType.LOAD_CHARACTER, character.to_dict()))
        self.assertEqual("Kiera", loaded.name)
        self.assertEqual(character.attributes, loaded.attributes)

    def test_action_of_accepts_string_types(self) -> None:
        action = Action.of("SET_AGE", 30)
        self.assertIs(ActionType.SET_AGE, action.type)
        self.assertEqual(30, apply(_base(), action).age)


if __name__ == "__main__":
    unittest.main()
