import logging
import os
import random
from dataclasses import dataclass
from typing import Optional

from traveller.application.services.career_service import CareerService
from traveller.application.services.character_creation_service import CharacterCreationService
from traveller.application.services.character_generator import CharacterGenerator
from traveller.application.services.character_session import CharacterSession
from traveller.application.services.event_bus import EventBus
from traveller.application.services.event_chain import DEFAULT_MAX_DEPTH, EventChainInterpreter
from traveller.domain.events import CareerEnded, EventChainRecursionLimited, EventChainSuspended
from traveller.domain.repositories import CharacterRepository, RuleTableRepository
from traveller.infrastructure.file_character_repo import JsonFileCharacterRepository
from traveller.infrastructure.inmemory.inmemory_character_repo import InMemoryCharacterRepository
from traveller.infrastructure.rule_tables import JsonRuleTableRepository
from traveller.infrastructure.tables_client import HttpRuleTableClient


logger = logging.getLogger(__name__)


@dataclass
class ChargenServices:
    rule_tables: RuleTableRepository
    characters: CharacterRepository
    event_bus: EventBus
    session: CharacterSession
    interpreter: EventChainInterpreter
    creation: CharacterCreationService
    careers: CareerService
    generator: CharacterGenerator


def build_rule_tables() -> RuleTableRepository:
    tables_url = os.getenv("TRAVELLER_TABLES_URL", "").strip()
    if tables_url:
        return HttpRuleTableClient(
            tables_url,
            timeout_s=float(os.getenv("TRAVELLER_HTTP_TIMEOUT_S", "10")),
            retries=int(os.getenv("TRAVELLER_HTTP_RETRIES", "2")),
            backoff_s=float(os.getenv("TRAVELLER_HTTP_BACKOFF_S", "0.2")),
        )
    return JsonRuleTableRepository(os.getenv("TRAVELLER_DATA_DIR") or None)


def build_character_repository() -> CharacterRepository:
    database_url = os.getenv("TRAVELLER_DATABASE_URL", "").strip()
    if database_url:
        from traveller.infrastructure.db.sql_character_repo import SqlCharacterRepository

        return SqlCharacterRepository(url=database_url)
    save_dir = os.getenv("TRAVELLER_SAVE_DIR", "").strip()
    if save_dir:
        return JsonFileCharacterRepository(save_dir)
    return InMemoryCharacterRepository()


def register_logging_handlers(event_bus: EventBus) -> None:
    def _career_ended(event: CareerEnded) -> None:
        logger.info(
            "Career ended",
            extra={"career": event.career, "terms": event.terms, "reason": event.reason, "forfeited": event.benefits_forfeited},
        )

    def _chain_suspended(event: EventChainSuspended) -> None:
        logger.debug("Event chain waiting on a choice", extra={"choice_id": event.choice_id, "options": event.option_count})

    def _recursion_limited(event: EventChainRecursionLimited) -> None:
        logger.warning(
            "Event chain recursion stopped",
            extra={"step_type": event.step_type, "depth": event.depth, "career": event.career, "table": event.table},
        )

    event_bus.subscribe(CareerEnded, _career_ended, priority=10)
    event_bus.subscribe(EventChainSuspended, _chain_suspended, priority=10)
    event_bus.subscribe(EventChainRecursionLimited, _recursion_limited, priority=10)


def create_chargen_services(
    seed: Optional[int] = None,
    rule_tables: Optional[RuleTableRepository] = None,
    characters: Optional[CharacterRepository] = None,
) -> ChargenServices:
    rng = random.Random(seed)
    tables = rule_tables or build_rule_tables()
    repository = characters or build_character_repository()
    event_bus = EventBus()
    register_logging_handlers(event_bus)

    careers_data = tables.careers()
    life_events = tables.tables().get("life_events")
    interpreter = EventChainInterpreter(
        careers_data,
        rng=rng,
        max_depth=int(os.getenv("TRAVELLER_MAX_CHAIN_DEPTH", str(DEFAULT_MAX_DEPTH))),
        event_publisher=event_bus.publish,
        life_events=life_events,
    )
    session = CharacterSession(event_bus=event_bus)
    creation = CharacterCreationService(tables.species(), rng=rng)
    careers = CareerService(careers_data, rng=rng, interpreter=interpreter, event_publisher=event_bus.publish)
    generator = CharacterGenerator(creation, careers, session=session, rng=rng)
    return ChargenServices(
        rule_tables=tables,
        characters=repository,
        event_bus=event_bus,
        session=session,
        interpreter=interpreter,
        creation=creation,
        careers=careers,
        generator=generator,
    )
