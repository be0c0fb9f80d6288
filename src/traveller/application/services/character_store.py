"""The character state-transition function.

``apply(character, action)`` is the only way a character changes. It never
mutates its argument: every call works on a deep copy and returns it.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping

from traveller.domain.models.character import YEARS_PER_TERM, CareerStint, Character, TempModifiers, new_character
from traveller.domain.models.stats import normalize_attribute_name


logger = logging.getLogger(__name__)


class ActionType(str, Enum):
    SET_NAME = "SET_NAME"
    SET_AGE = "SET_AGE"
    SET_SPECIES = "SET_SPECIES"
    SET_ATTRIBUTES = "SET_ATTRIBUTES"
    UPDATE_ATTRIBUTE = "UPDATE_ATTRIBUTE"
    REDUCE_ATTRIBUTE = "REDUCE_ATTRIBUTE"
    LOCK_ATTRIBUTES = "LOCK_ATTRIBUTES"
    ADD_SKILL = "ADD_SKILL"
    UPDATE_SKILL = "UPDATE_SKILL"
    REMOVE_SKILL = "REMOVE_SKILL"
    START_CAREER = "START_CAREER"
    END_CAREER = "END_CAREER"
    ADD_CAREER_EVENT = "ADD_CAREER_EVENT"
    ADVANCE_TERM = "ADVANCE_TERM"
    PROMOTE = "PROMOTE"
    COMMISSION = "COMMISSION"
    ADD_CONTACT = "ADD_CONTACT"
    ADD_ALLY = "ADD_ALLY"
    ADD_ENEMY = "ADD_ENEMY"
    ADD_RIVAL = "ADD_RIVAL"
    ADD_GEAR = "ADD_GEAR"
    ADD_CYBERWARE = "ADD_CYBERWARE"
    UPDATE_MONEY = "UPDATE_MONEY"
    ADD_BENEFIT_ROLLS = "ADD_BENEFIT_ROLLS"
    AWARD_BENEFIT_ROLLS = "AWARD_BENEFIT_ROLLS"
    RESOLVE_BENEFIT_ROLL = "RESOLVE_BENEFIT_ROLL"
    ADD_INJURY = "ADD_INJURY"
    UPDATE_DAMAGE = "UPDATE_DAMAGE"
    SET_ADVANCEMENT_DM = "SET_ADVANCEMENT_DM"
    SET_BENEFIT_DM = "SET_BENEFIT_DM"
    CLEAR_TEMP_MODIFIERS = "CLEAR_TEMP_MODIFIERS"
    SET_BACKGROUND_SKILLS_SELECTED = "SET_BACKGROUND_SKILLS_SELECTED"
    RESET_CHARACTER = "RESET_CHARACTER"
    LOAD_CHARACTER = "LOAD_CHARACTER"


@dataclass(frozen=True)
class Action:
    type: ActionType
    payload: Any = None

    @classmethod
    def of(cls, action_type: ActionType | str, payload: Any = None) -> "Action":
        return cls(type=ActionType(action_type), payload=payload)


RELATIONSHIP_ACTIONS: Dict[str, ActionType] = {
    "contact": ActionType.ADD_CONTACT,
    "ally": ActionType.ADD_ALLY,
    "enemy": ActionType.ADD_ENEMY,
    "rival": ActionType.ADD_RIVAL,
}

_RELATIONSHIP_FIELDS: Dict[ActionType, str] = {
    ActionType.ADD_CONTACT: "contacts",
    ActionType.ADD_ALLY: "allies",
    ActionType.ADD_ENEMY: "enemies",
    ActionType.ADD_RIVAL: "rivals",
    ActionType.ADD_GEAR: "gear",
    ActionType.ADD_CYBERWARE: "cyberware",
}

_ROLL_DISTINGUISHED_EVENTS = frozenset({"survival", "advancement"})


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except Exception:
        return default


def _payload(action: Action) -> Mapping[str, Any]:
    return action.payload if isinstance(action.payload, Mapping) else {}


def is_duplicate_event(existing: Mapping[str, Any], candidate: Mapping[str, Any]) -> bool:
    if existing.get("term") != candidate.get("term") or existing.get("type") != candidate.get("type"):
        return False
    if candidate.get("type") in _ROLL_DISTINGUISHED_EVENTS:
        return all(existing.get(key) == candidate.get(key) for key in ("success", "roll", "target"))
    return existing.get("description") == candidate.get("description")


def _set_name(state: Character, action: Action) -> None:
    state.name = str(action.payload or "")


def _set_age(state: Character, action: Action) -> None:
    state.age = max(0, _int(action.payload, state.age))


def _set_species(state: Character, action: Action) -> None:
    state.species = str(action.payload or state.species)


def _set_attributes(state: Character, action: Action) -> None:
    for raw_name, raw_value in _payload(action).items():
        name = normalize_attribute_name(raw_name)
        if name is not None:
            state.attributes[name] = _int(raw_value)


def _update_attribute(state: Character, action: Action) -> None:
    payload = _payload(action)
    name = normalize_attribute_name(payload.get("attribute"))
    if name is None:
        logger.warning("Ignoring update for unknown attribute", extra={"attribute": payload.get("attribute")})
        return
    state.attributes[name] = _int(payload.get("value"), state.attributes.get(name, 0))


def _reduce_attribute(state: Character, action: Action) -> None:
    payload = _payload(action)
    name = normalize_attribute_name(payload.get("attribute"))
    if name is None:
        logger.warning("Ignoring reduction for unknown attribute", extra={"attribute": payload.get("attribute")})
        return
    state.attributes[name] = state.attributes.get(name, 0) - _int(payload.get("amount"))


def _lock_attributes(state: Character, action: Action) -> None:
    state.attributes_locked = True if action.payload is None else bool(action.payload)


def _add_skill(state: Character, action: Action) -> None:
    payload = _payload(action)
    skill = str(payload.get("skill") or "").strip()
    if not skill:
        return
    state.skills[skill] = state.skills.get(skill, 0) + _int(payload.get("level", 1), 1)


def _update_skill(state: Character, action: Action) -> None:
    payload = _payload(action)
    skill = str(payload.get("skill") or "").strip()
    if not skill:
        return
    level = _int(payload.get("level"))
    if level <= 0:
        state.skills.pop(skill, None)
    else:
        state.skills[skill] = level


def _remove_skill(state: Character, action: Action) -> None:
    skill = action.payload.get("skill") if isinstance(action.payload, Mapping) else action.payload
    state.skills.pop(str(skill or ""), None)


def _start_career(state: Character, action: Action) -> None:
    payload = _payload(action)
    career = str(payload.get("career") or "").strip()
    if not career:
        logger.warning("START_CAREER without a career name was ignored")
        return
    if state.current_career is not None:
        logger.warning(
            "START_CAREER rejected while another career is open",
            extra={"open_career": state.current_career, "requested_career": career},
        )
        return
    state.current_career = career
    state.current_term = max(0, _int(payload.get("term", 1), 1))
    state.career_history.append(
        CareerStint(
            career=career,
            assignment=payload.get("assignment"),
            rank_title=str(payload.get("rank_title") or ""),
            commissioned=bool(payload.get("commissioned", False)),
            start_age=state.age,
        )
    )


def _end_career(state: Character, action: Action) -> None:
    if state.current_career is None:
        logger.warning("END_CAREER ignored because no career is open")
        return
    stint = state.open_stint
    if stint is not None:
        stint.terms = state.current_term
        if bool(_payload(action).get("forfeit_benefits", False)):
            stint.benefits_forfeited = True
    state.age += state.current_term * YEARS_PER_TERM
    state.current_career = None
    state.current_term = 0


def _add_career_event(state: Character, action: Action) -> None:
    if not state.career_history:
        logger.warning("ADD_CAREER_EVENT ignored because there is no career history")
        return
    stint = state.career_history[-1]
    event = {"term": state.current_term, **dict(_payload(action))}
    if any(is_duplicate_event(existing, event) for existing in stint.events):
        logger.debug("Suppressed duplicate career event", extra={"event_type": event.get("type"), "term": event["term"]})
        return
    stint.events.append(event)


def _advance_term(state: Character, action: Action) -> None:
    if state.current_career is None:
        logger.warning("ADVANCE_TERM ignored because no career is open")
        return
    state.current_term += 1
    state.age += YEARS_PER_TERM


def _promote(state: Character, action: Action) -> None:
    stint = state.open_stint
    if stint is None:
        logger.warning("PROMOTE ignored because no career is open")
        return
    stint.rank += 1
    title = _payload(action).get("rank_title")
    if title:
        stint.rank_title = str(title)


def _commission(state: Character, action: Action) -> None:
    stint = state.open_stint
    if stint is None:
        logger.warning("COMMISSION ignored because no career is open")
        return
    if stint.commissioned:
        logger.warning("COMMISSION ignored because the stint is already commissioned")
        return
    stint.commissioned = True
    stint.rank = 1
    title = _payload(action).get("rank_title")
    if title:
        stint.rank_title = str(title)


def _append_to_list(state: Character, action: Action) -> None:
    field_name = _RELATIONSHIP_FIELDS[action.type]
    if action.payload is None or action.payload == "":
        return
    getattr(state, field_name).append(str(action.payload))


def _update_money(state: Character, action: Action) -> None:
    state.money = max(0, state.money + _int(action.payload))


def _add_benefit_rolls(state: Character, action: Action) -> None:
    amount = _int(action.payload)
    if amount < 0:
        logger.warning("ADD_BENEFIT_ROLLS rejected a negative amount", extra={"amount": amount})
        return
    state.benefit_rolls += amount


def _award_benefit_rolls(state: Character, action: Action) -> None:
    amount = max(0, _int(_payload(action).get("amount")))
    state.benefit_rolls += amount
    stint = state.last_stint
    if stint is not None:
        stint.benefit_rolls_awarded = True


def _resolve_benefit_roll(state: Character, action: Action) -> None:
    if state.benefit_rolls <= 0:
        logger.warning("RESOLVE_BENEFIT_ROLL ignored because no benefit rolls remain")
        return
    state.benefit_rolls -= 1
    state.temp_modifiers.benefit_dm = 0


def _add_injury(state: Character, action: Action) -> None:
    state.injuries.append(dict(_payload(action)))


def _update_damage(state: Character, action: Action) -> None:
    payload = _payload(action)
    if "current" in payload:
        state.damage.current = _int(payload.get("current"), state.damage.current)


def _set_advancement_dm(state: Character, action: Action) -> None:
    state.temp_modifiers.advancement_dm = _int(action.payload)


def _set_benefit_dm(state: Character, action: Action) -> None:
    state.temp_modifiers.benefit_dm = _int(action.payload)


def _clear_temp_modifiers(state: Character, action: Action) -> None:
    state.temp_modifiers = TempModifiers()


def _set_background_skills_selected(state: Character, action: Action) -> None:
    state.background_skills_selected = True if action.payload is None else bool(action.payload)


_REDUCERS: Dict[ActionType, Callable[[Character, Action], None]] = {
    ActionType.SET_NAME: _set_name,
    ActionType.SET_AGE: _set_age,
    ActionType.SET_SPECIES: _set_species,
    ActionType.SET_ATTRIBUTES: _set_attributes,
    ActionType.UPDATE_ATTRIBUTE: _update_attribute,
    ActionType.REDUCE_ATTRIBUTE: _reduce_attribute,
    ActionType.LOCK_ATTRIBUTES: _lock_attributes,
    ActionType.ADD_SKILL: _add_skill,
    ActionType.UPDATE_SKILL: _update_skill,
    ActionType.REMOVE_SKILL: _remove_skill,
    ActionType.START_CAREER: _start_career,
    ActionType.END_CAREER: _end_career,
    ActionType.ADD_CAREER_EVENT: _add_career_event,
    ActionType.ADVANCE_TERM: _advance_term,
    ActionType.PROMOTE: _promote,
    ActionType.COMMISSION: _commission,
    ActionType.ADD_CONTACT: _append_to_list,
    ActionType.ADD_ALLY: _append_to_list,
    ActionType.ADD_ENEMY: _append_to_list,
    ActionType.ADD_RIVAL: _append_to_list,
    ActionType.ADD_GEAR: _append_to_list,
    ActionType.ADD_CYBERWARE: _append_to_list,
    ActionType.UPDATE_MONEY: _update_money,
    ActionType.ADD_BENEFIT_ROLLS: _add_benefit_rolls,
    ActionType.AWARD_BENEFIT_ROLLS: _award_benefit_rolls,
    ActionType.RESOLVE_BENEFIT_ROLL: _resolve_benefit_roll,
    ActionType.ADD_INJURY: _add_injury,
    ActionType.UPDATE_DAMAGE: _update_damage,
    ActionType.SET_ADVANCEMENT_DM: _set_advancement_dm,
    ActionType.SET_BENEFIT_DM: _set_benefit_dm,
    ActionType.CLEAR_TEMP_MODIFIERS: _clear_temp_modifiers,
    ActionType.SET_BACKGROUND_SKILLS_SELECTED: _set_background_skills_selected,
}


def apply(character: Character, action: Action) -> Character:
    try:
        action_type = ActionType(action.type)
    except ValueError:
        logger.warning("Unknown character action ignored", extra={"action_type": str(action.type)})
        return character

    if action_type is ActionType.RESET_CHARACTER:
        return new_character()
    if action_type is ActionType.LOAD_CHARACTER:
        payload = action.payload.to_dict() if isinstance(action.payload, Character) else action.payload
        return Character.from_dict(payload if isinstance(payload, Mapping) else {})

    state = copy.deepcopy(character)
    if action.type is not action_type:
        action = Action(type=action_type, payload=action.payload)
    _REDUCERS[action_type](state, action)
    state.recompute_damage_max()
    return state
