"""
Tests for the typer CLI.
"""

import orjson
import pytest
from typer.testing import CliRunner

from roundtable.config.settings import ServiceConfig
from roundtable.core.fsm import Phase
from roundtable.core.roles import Role
from roundtable.services import cli
from roundtable.services.cli import app, play_scripted_game
from roundtable.services.commands import SessionService
from roundtable.utils.rng import build_rng

from conftest import run

runner = CliRunner()


@pytest.fixture(autouse=True)
def _default_logging(monkeypatch):
    # Cached loggers would keep writing to the runner's captured stream.
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)


def test_rules_lists_every_player_count():
    result = runner.invoke(app, ["rules"])
    assert result.exit_code == 0
    assert "10 players: 6 good, 4 evil." in result.output
    assert "Mission 4 needs at least two fail votes to fail." in result.output


def test_simulate_writes_a_finished_transcript(tmp_path):
    transcript = tmp_path / "game.json"
    result = runner.invoke(
        app,
        [
            "simulate",
            "--players",
            "7",
            "--seed",
            "21",
            "--roles",
            "percival",
            "--config",
            str(tmp_path / "missing.json"),
            "--transcript",
            str(transcript),
        ],
    )
    assert result.exit_code == 0, result.output
    document = orjson.loads(transcript.read_bytes())
    roles = [player["role"] for player in document["players"]]
    assert len(roles) == 7
    assert "Percival" in roles and "Morgana" in roles
    assert document["missions"]


def test_simulate_rejects_unknown_roles(tmp_path):
    result = runner.invoke(app, ["simulate", "--roles", "jester", "--config", str(tmp_path / "missing.json")])
    assert result.exit_code != 0


def test_scripted_game_always_finishes():
    for seed in range(5):
        service = SessionService(config=ServiceConfig(seed=seed))
        session = run(
            play_scripted_game(service, players=5, additional_roles=[Role.MORDRED], rng=build_rng(seed=seed))
        )
        assert service.engine.phase(session) == Phase.FINISHED
        assert service.engine.outcome(session) is not None


def test_simulate_reports_rule_violations(tmp_path):
    result = runner.invoke(
        app,
        ["simulate", "--players", "5", "--roles", "mordred,oberon", "--config", str(tmp_path / "missing.json")],
    )
    assert result.exit_code == 1
