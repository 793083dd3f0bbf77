"""Unit tests for the typer application wiring."""

from typer.testing import CliRunner

from ticketflow.app import app


class TestApp:
    def test_registers_commands(self):
        names = {c.name for c in app.registered_commands}

        assert names == {
            "init",
            "run-once",
            "run",
            "process-ticket",
            "sync-reviews",
            "merge-ready",
            "status",
        }

    def test_init_show(self, tmp_path):
        result = CliRunner().invoke(
            app, ["init", "--show", "--config", str(tmp_path / "config.toml")]
        )

        assert result.exit_code == 0
        assert "max_concurrent_agents" in result.output
        assert not (tmp_path / "config.toml").exists()
