"""Tests for the command-line interface."""

from datetime import date, timedelta

from click.testing import CliRunner

from runplan.cli import cli


def invoke(db_url, *args):
    return CliRunner().invoke(cli, ["--user", "runner", "--database-url", db_url, *args])


def test_configure_status_and_overview(tmp_path):
    db_url = f"sqlite:///{tmp_path / 'runplan.db'}"
    goal_date = (date.today() + timedelta(weeks=10)).isoformat()

    assert invoke(db_url, "init-db").exit_code == 0

    result = invoke(
        db_url, "configure",
        "--goal-type", "half_marathon",
        "--goal-date", goal_date,
        "--weekly-mileage", "25",
    )
    assert result.exit_code == 0, result.output
    assert "Training config saved" in result.output

    status = invoke(db_url, "status")
    assert status.exit_code == 0
    assert "half_marathon" in status.output
    assert "not connected" in status.output

    overview = invoke(db_url, "overview")
    assert overview.exit_code == 0
    assert f"Plan to {goal_date}" in overview.output
    assert f"weeks until {goal_date}" in overview.output
    assert "peak of" in overview.output


def test_connect_and_disconnect(tmp_path):
    db_url = f"sqlite:///{tmp_path / 'runplan.db'}"
    invoke(db_url, "init-db")

    result = invoke(
        db_url, "connect", "--platform", "strava",
        "--access-token", "a", "--refresh-token", "r", "--expires-at", "4102444800",
    )
    assert result.exit_code == 0
    assert "Strava connected" in invoke(db_url, "status").output

    invoke(db_url, "disconnect", "--platform", "strava")
    assert "Strava not connected" in invoke(db_url, "status").output


def test_plan_without_config(tmp_path):
    db_url = f"sqlite:///{tmp_path / 'runplan.db'}"
    invoke(db_url, "init-db")

    result = invoke(db_url, "plan")

    assert result.exit_code == 0
    assert "No training configuration found" in result.output


def test_modifications_empty(tmp_path):
    db_url = f"sqlite:///{tmp_path / 'runplan.db'}"
    invoke(db_url, "init-db")

    assert "No recovery-driven plan changes" in invoke(db_url, "modifications").output
