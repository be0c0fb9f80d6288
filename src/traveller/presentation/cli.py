from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from traveller.application.services.skill_training import get_formatted_skills
from traveller.application.services.validation import get_character_progress
from traveller.bootstrap import ChargenServices, create_chargen_services
from traveller.domain.errors import ImportFormatError
from traveller.domain.models.character import Character
from traveller.domain.models.stats import ALL_ATTRIBUTES, attribute_modifier
from traveller.infrastructure.character_io import export_character, import_character


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="traveller", description="Traveller character generator")
    parser.add_argument("--seed", type=int, default=None, help="Seed the dice for a repeatable run")
    commands = parser.add_subparsers(dest="command")

    generate = commands.add_parser("generate", help="Roll up a complete character")
    generate.add_argument("--name", default="Traveller")
    generate.add_argument("--species", default="Human")
    generate.add_argument("--career", action="append", dest="careers", default=None, help="Career to attempt; repeatable")
    generate.add_argument("--terms", type=int, default=2, help="Terms to serve in each career")
    generate.add_argument("--method", choices=("2d6", "3d6_drop_lowest"), default="2d6")
    generate.add_argument("--save", metavar="KEY", default=None, help="Save the result under KEY")
    generate.add_argument("--export", metavar="PATH", default=None, help="Write the character to a JSON file")
    generate.add_argument("--quiet", action="store_true", help="Hide the term-by-term log")

    commands.add_parser("careers", help="List the available careers")
    commands.add_parser("species", help="List the available species")
    commands.add_parser("list", help="List saved characters")

    show = commands.add_parser("show", help="Display a saved character")
    show.add_argument("key")

    delete = commands.add_parser("delete", help="Delete a saved character")
    delete.add_argument("key")

    importer = commands.add_parser("import", help="Import a character JSON file into the save store")
    importer.add_argument("path")
    importer.add_argument("--key", default=None)
    return parser


def render_character(console: Console, character: Character, species: Sequence[str] | None = None) -> None:
    attributes = "  ".join(
        f"{name} {character.attributes.get(name, 0)} ({attribute_modifier(character.attributes.get(name, 0)):+d})"
        for name in ALL_ATTRIBUTES
        if name != "PSI" or character.attributes.get("PSI")
    )
    header = [
        f"[bold]{character.name or 'Unnamed'}[/bold]  {character.species}  age {character.age}",
        attributes,
        f"Credits: Cr{character.money:,}   Benefit rolls left: {character.benefit_rolls}",
    ]
    console.print(Panel("\n".join(header), title="Character", border_style="cyan"))

    skills = Table(title="Skills", show_header=True, header_style="bold")
    skills.add_column("Skill")
    skills.add_column("Level", justify="right")
    for skill in get_formatted_skills(character):
        skills.add_row(skill.name, str(skill.level))
    console.print(skills)

    careers = Table(title="Careers", show_header=True, header_style="bold")
    careers.add_column("Career")
    careers.add_column("Assignment")
    careers.add_column("Terms", justify="right")
    careers.add_column("Rank")
    for stint in character.career_history:
        rank = f"{stint.rank} {stint.rank_title}".strip()
        if stint.commissioned:
            rank += " (officer)"
        careers.add_row(stint.career, stint.assignment or "-", str(stint.terms), rank)
    console.print(careers)

    extras: List[str] = []
    for label, values in (
        ("Contacts", character.contacts),
        ("Allies", character.allies),
        ("Enemies", character.enemies),
        ("Rivals", character.rivals),
        ("Gear", character.gear),
        ("Cyberware", character.cyberware),
        ("Injuries", [injury.get("description", injury) for injury in character.injuries]),
    ):
        if values:
            extras.append(f"{label}: {', '.join(str(value) for value in values)}")
    if extras:
        console.print(Panel("\n".join(extras), border_style="dim"))

    progress = get_character_progress(character, species)
    console.print(f"[dim]Progress {progress.progress_percentage}% ({progress.completed_steps}/{progress.total_steps})[/dim]")


def _generate(console: Console, services: ChargenServices, args: argparse.Namespace) -> int:
    report = services.generator.generate(
        args.name,
        species=args.species,
        career_plan=args.careers,
        terms_per_career=args.terms,
        method=args.method,
    )
    if not args.quiet:
        console.print(Panel("\n".join(report.log) or "Nothing happened", title="Career log", border_style="yellow"))
    render_character(console, report.character, services.creation.list_species())
    for issue in report.issues:
        console.print(f"[yellow]! {issue}[/yellow]")
    if args.save:
        services.characters.save(args.save, report.character)
        console.print(f"[green]Saved as {args.save}[/green]")
    if args.export:
        Path(args.export).write_text(export_character(report.character), encoding="utf-8")
        console.print(f"[green]Exported to {args.export}[/green]")
    return 0


def run(argv: Optional[Sequence[str]] = None, console: Optional[Console] = None, services: Optional[ChargenServices] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    console = console or Console()
    command = args.command
    if command is None:
        parser.print_help()
        return 0
    services = services or create_chargen_services(seed=args.seed)

    if command == "generate":
        return _generate(console, services, args)

    if command == "careers":
        table = Table(title="Careers", show_header=True, header_style="bold")
        table.add_column("Career")
        table.add_column("Qualification")
        table.add_column("Assignments")
        for key, career in sorted(services.rule_tables.careers().items()):
            qualification = ", ".join(f"{attr} {target}+" for attr, target in (career.get("qualification") or {}).items())
            table.add_row(str(career.get("name") or key), qualification or "automatic", ", ".join(career.get("assignments") or []))
        console.print(table)
        return 0

    if command == "species":
        for name in services.creation.list_species():
            data = services.creation.species_data(name) or {}
            modifiers = ", ".join(f"{attr} {value:+d}" for attr, value in (data.get("attributeModifiers") or {}).items())
            console.print(f"[bold]{name}[/bold] {modifiers}")
        return 0

    if command == "list":
        keys = services.characters.list_keys()
        if not keys:
            console.print("[dim]No saved characters[/dim]")
        for key in keys:
            console.print(key)
        return 0

    if command == "show":
        character = services.characters.load(args.key)
        if character is None:
            console.print(f"[red]No saved character named {args.key}[/red]")
            return 1
        render_character(console, character, services.creation.list_species())
        return 0

    if command == "delete":
        if not services.characters.delete(args.key):
            console.print(f"[red]No saved character named {args.key}[/red]")
            return 1
        console.print(f"Deleted {args.key}")
        return 0

    if command == "import":
        try:
            character = import_character(Path(args.path).read_text(encoding="utf-8"))
        except (OSError, ImportFormatError) as exc:
            console.print(f"[red]Import failed: {exc}[/red]")
            return 1
        key = args.key or Path(args.path).stem
        services.characters.save(key, character)
        console.print(f"[green]Imported {character.name or 'character'} as {key}[/green]")
        return 0

    console.print(f"[red]Unknown command {command}[/red]")
    return 2
