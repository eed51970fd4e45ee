from __future__ import annotations

from pathlib import Path

from typer.testing import CliRunner

from cave_village.core.engine import GameEngine, run_simulation
from cave_village.core.loader import load_content
from cave_village.tools.simulate import app

runner = CliRunner()


def test_smoke_run_three_minutes_without_crash():
    content = load_content(Path(__file__).resolve().parents[1] / "content")
    final_state, timeline = run_simulation(GameEngine(content=content, seed=9991), 180, policy="gather")

    assert final_state.play_time > 170000
    assert final_state.flags["fireLit"] is True
    assert final_state.button_clicks["chopWood"] >= 5
    assert "buttonMastery" in final_state.events
    assert len(timeline) > 0


def test_greedy_policy_runs_without_crash():
    content = load_content(Path(__file__).resolve().parents[1] / "content")
    final_state, _ = run_simulation(GameEngine(content=content, seed=4), 300, policy="greedy")

    assert final_state.play_time > 0
    assert final_state.seed == 4


def test_cli_run_prints_a_signature():
    result = runner.invoke(app, ["run", "--seed", "77", "--seconds", "30", "--quiet"])
    again = runner.invoke(app, ["run", "--seed", "77", "--seconds", "30", "--quiet"])

    assert result.exit_code == 0, result.output
    assert "Simulation Summary" in result.output
    signature = result.output.strip().splitlines()[-1].split()[-1]
    assert len(signature) == 16
    assert again.output.strip().splitlines()[-1].split()[-1] == signature


def test_cli_run_can_write_a_save_slot(tmp_path: Path):
    saves_dir = tmp_path / "saves"
    result = runner.invoke(app, ["run", "--seconds", "10", "--quiet", "--save-slot", "2", "--saves-dir", str(saves_dir)])

    assert result.exit_code == 0, result.output
    assert (saves_dir / "slot2.json").exists()

    listing = runner.invoke(app, ["slots", "--saves-dir", str(saves_dir)])
    assert listing.exit_code == 0, listing.output
    assert "Save Slots" in listing.output


def test_cli_validate_reports_broken_content(tmp_path: Path):
    ok = runner.invoke(app, ["validate"])
    assert ok.exit_code == 0, ok.output
    assert "Content OK." in ok.output

    broken = runner.invoke(app, ["validate", "--content-dir", str(tmp_path)])
    assert broken.exit_code == 1
    assert "Content load failed" in broken.output
