"""Typer CLI entry point for the roundtable service."""

from __future__ import annotations

import asyncio
import random
from pathlib import Path
from typing import List, Optional

import orjson
import structlog
import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from ..config.settings import DEFAULT_CONFIG_PATH, load_service_config
from ..core.errors import GameError
from ..core.fsm import Phase
from ..core.roles import ADDITIONAL_ROLES, Role, is_evil, pair_percival_morgana
from ..core.rulesets import DEFAULT_RULES, describe_ruleset
from ..core.schemas import GameSession, TeamResult
from ..utils.logging import configure_logging
from ..utils.rng import build_rng, sample_team
from .commands import SessionService

LOGGER = structlog.get_logger(__name__)

app = typer.Typer(help="Run and inspect Avalon sessions.", invoke_without_command=False)
console = Console()

MAX_ITERATIONS = 500


class SimulationError(RuntimeError):
    """Raised when a scripted game cannot make progress."""


def _parse_roles(raw: Optional[str]) -> List[Role]:
    if not raw:
        return []
    roles: List[Role] = []
    for name in raw.split(","):
        name = name.strip()
        if not name:
            continue
        try:
            role = Role(name.capitalize())
        except ValueError as exc:
            raise typer.BadParameter(f"Unknown role {name!r}") from exc
        if role not in ADDITIONAL_ROLES:
            raise typer.BadParameter(f"{role.value} is not an optional role")
        roles.append(role)
    return pair_percival_morgana(roles)


async def play_scripted_game(
    service: SessionService,
    *,
    players: int,
    additional_roles: List[Role],
    rng: random.Random,
) -> GameSession:
    """Play a whole game with randomly behaving seats and return the final session."""

    ids = [f"player-{index + 1}" for index in range(players)]
    session = await service.create_session(ids[0], "Scripted table")
    for user_id in ids[1:]:
        await service.join(user_id, session.id)
    session = await service.start(ids[0], session.id, additional_roles=additional_roles)
    engine = service.engine

    for _ in range(MAX_ITERATIONS):
        phase = engine.phase(session)
        if phase == Phase.FINISHED:
            return session
        if phase == Phase.SELECTING_MEMBERS:
            leader = session.players[engine.leader_index(session)].id
            team = sample_team(rng, team_size=engine.required_team_size(session), total_players=players)
            session = await service.select_members(leader, session.id, team)
        elif phase == Phase.WAITING_FOR_APPROVAL:
            for user_id in ids:
                session = await service.approve(user_id, session.id, rng.random() < 0.6)
        elif phase == Phase.WAITING_FOR_VOTE:
            team = session.last_team()
            for index in list(team.member_indices):
                player = session.players[index]
                success = not is_evil(player.role) or rng.random() < 0.5
                session = await service.vote(player.id, session.id, success)
        elif phase == Phase.GUESSING_MERLIN:
            assassin = next(player for player in session.players if player.role == Role.ASSASSIN)
            suspects = [index for index, player in enumerate(session.players) if not is_evil(player.role)]
            session = await service.guess_merlin(assassin.id, session.id, rng.choice(suspects))
        else:
            raise SimulationError(f"Unexpected phase {phase}")
    raise SimulationError("Scripted game reached the iteration cap without finishing")


def _render(service: SessionService, session: GameSession) -> None:
    engine = service.engine

    roles = Table(title="Roles", show_header=True, header_style="bold cyan")
    roles.add_column("#")
    roles.add_column("Player")
    roles.add_column("Role")
    for index, player in enumerate(session.players):
        style = "red" if is_evil(player.role) else "green"
        roles.add_row(str(index), player.id, f"[{style}]{player.role.value}[/{style}]")
    console.print(roles)

    missions = Table(title="Missions", show_header=True, header_style="bold cyan")
    for column in ("Mission", "Attempt", "Leader", "Team", "Deniers", "Fails", "Result"):
        missions.add_column(column)
    for rows in engine.summaries(session):
        for summary in rows:
            result = summary.result.value
            if summary.result == TeamResult.SUCCEEDED:
                result = f"[green]{result}[/green]"
            elif summary.result in (TeamResult.FAILED, TeamResult.DENIED):
                result = f"[red]{result}[/red]"
            missions.add_row(
                str(summary.mission_index + 1),
                str(summary.attempt_index + 1),
                str(summary.leader_index),
                ",".join(map(str, summary.member_indices)),
                ",".join(map(str, summary.denier_indices)),
                "" if summary.fail_votes_count is None else str(summary.fail_votes_count),
                result,
            )
    console.print(missions)
    console.print(engine.situation(session).status, style="bold")


@app.command("simulate")
def simulate(
    players: int = typer.Option(5, min=5, max=10, help="Number of seated players"),
    seed: Optional[int] = typer.Option(None, help="Seed for deterministic simulation"),
    roles: Optional[str] = typer.Option(None, help="Comma separated additional roles, e.g. percival,oberon"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to service configuration JSON"),
    transcript: Optional[Path] = typer.Option(None, help="Write the final session document to this JSON file"),
) -> None:
    """Play one scripted game end to end and print the result."""

    load_dotenv()
    service_config = load_service_config(config)
    if seed is not None:
        service_config = service_config.model_copy(update={"seed": seed})
    configure_logging(service_config.log_level)

    additional_roles = _parse_roles(roles)
    service = SessionService(config=service_config.model_copy(update={"snapshot_dir": None}))
    rng = build_rng(seed=service_config.seed)

    LOGGER.info("simulation.start", players=players, seed=service_config.seed, roles=[r.value for r in additional_roles])
    try:
        session = asyncio.run(
            play_scripted_game(service, players=players, additional_roles=additional_roles, rng=rng)
        )
    except GameError as exc:
        LOGGER.error("simulation.rejected", code=exc.code, reason=exc.message)
        raise typer.Exit(code=1) from exc
    except SimulationError as exc:
        LOGGER.error("simulation.failed", error=str(exc))
        raise typer.Exit(code=1) from exc

    _render(service, session)
    if transcript is not None:
        transcript.parent.mkdir(parents=True, exist_ok=True)
        transcript.write_bytes(
            orjson.dumps(session.model_dump(mode="json", by_alias=True), option=orjson.OPT_INDENT_2)
        )
        typer.echo(f"Transcript saved to {transcript}")


@app.command("rules")
def rules() -> None:
    """Print the rule table for every supported player count."""

    table = Table(show_header=True, header_style="bold cyan")
    for column in ("Players", "Good", "Evil", "Team sizes", "Two fails needed on"):
        table.add_column(column)
    for count in DEFAULT_RULES.available_player_counts():
        ruleset = DEFAULT_RULES.ruleset(count)
        double_fail = "" if ruleset.double_fail_mission is None else f"mission {ruleset.double_fail_mission + 1}"
        table.add_row(str(count), str(ruleset.good), str(ruleset.evil), ruleset.get_mission_sizes_description(), double_fail)
    console.print(table)
    for count in DEFAULT_RULES.available_player_counts():
        typer.echo(describe_ruleset(DEFAULT_RULES.ruleset(count)).rstrip())


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Interface to bind"),
    port: int = typer.Option(8000, help="Port to listen on"),
    config: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to service configuration JSON"),
) -> None:
    """Run the web API with uvicorn."""

    import uvicorn

    from .web_api import create_app

    load_dotenv()
    service_config = load_service_config(config)
    configure_logging(service_config.log_level)
    LOGGER.info("server.start", host=host, port=port, snapshot_dir=str(service_config.snapshot_dir or ""))
    uvicorn.run(create_app(SessionService(config=service_config)), host=host, port=port, log_level="warning")


if __name__ == "__main__":  # pragma: no cover
    app()
