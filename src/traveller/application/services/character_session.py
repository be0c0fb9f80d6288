from __future__ import annotations

import logging
from typing import Any, Optional

from traveller.application.services.character_store import RELATIONSHIP_ACTIONS, Action, ActionType, apply
from traveller.application.services.event_bus import EventBus
from traveller.domain.events import CharacterActionApplied
from traveller.domain.models.character import Character, new_character
from traveller.domain.models.stats import attribute_modifier


logger = logging.getLogger(__name__)


class CharacterSession:
    """Single-writer holder for the character being built.

    Callers must finish one dispatch before starting the next; the session
    does no locking of its own.
    """

    def __init__(self, character: Optional[Character] = None, event_bus: Optional[EventBus] = None) -> None:
        self.character = character or new_character()
        self.event_bus = event_bus
        self._dispatching = False

    def dispatch(self, action: Action) -> Character:
        if self._dispatching:
            raise RuntimeError("CharacterSession.dispatch is not re-entrant; serialise actions")
        self._dispatching = True
        try:
            self.character = apply(self.character, action)
        finally:
            self._dispatching = False
        if self.event_bus is not None:
            payload = action.payload if isinstance(action.payload, dict) else {"value": action.payload}
            self.event_bus.publish(
                CharacterActionApplied(
                    action_type=ActionType(action.type).value,
                    character_name=self.character.name,
                    payload=dict(payload),
                )
            )
        return self.character

    def adopt(self, character: Character) -> Character:
        """Replace the held character with one produced outside the session."""
        self.character = character
        return character

    def update_attribute(self, attribute: str, value: int) -> Character:
        return self.dispatch(Action(ActionType.UPDATE_ATTRIBUTE, {"attribute": attribute, "value": value}))

    def add_skill(self, skill: str, level: int = 1) -> Character:
        return self.dispatch(Action(ActionType.ADD_SKILL, {"skill": skill, "level": level}))

    def update_skill(self, skill: str, level: int) -> Character:
        return self.dispatch(Action(ActionType.UPDATE_SKILL, {"skill": skill, "level": level}))

    def start_career(self, career: str, assignment: str | None = None, rank_title: str = "", commissioned: bool = False) -> Character:
        return self.dispatch(
            Action(
                ActionType.START_CAREER,
                {"career": career, "assignment": assignment, "rank_title": rank_title, "commissioned": commissioned},
            )
        )

    def end_career(self, forfeit_benefits: bool = False) -> Character:
        return self.dispatch(Action(ActionType.END_CAREER, {"forfeit_benefits": forfeit_benefits}))

    def add_career_event(self, event: dict[str, Any]) -> Character:
        return self.dispatch(Action(ActionType.ADD_CAREER_EVENT, dict(event)))

    def add_relationship(self, kind: str, name: str) -> Character:
        action_type = RELATIONSHIP_ACTIONS.get(str(kind or "").strip().lower())
        if action_type is None:
            logger.warning("Unknown relationship kind ignored", extra={"kind": kind})
            return self.character
        return self.dispatch(Action(action_type, name))

    def get_attribute_modifier(self, attribute: str) -> int:
        return attribute_modifier(self.character.attributes.get(str(attribute).upper(), 0))
