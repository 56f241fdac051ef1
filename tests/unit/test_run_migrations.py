"""Tests for the programmatic Alembic runner."""

import pytest

from timetrack.db import run_migrations


@pytest.mark.unit
class TestRunMigrations:
    def test_upgrade_defaults_to_head(self, mocker) -> None:
        upgrade = mocker.MagicMock()
        mocker.patch.dict(run_migrations.COMMANDS, {"upgrade": (upgrade, ["head"])})
        cfg = mocker.patch.object(run_migrations, "build_config").return_value

        run_migrations.main(["upgrade"])

        upgrade.assert_called_once_with(cfg, "head")

    def test_explicit_revision_is_passed_through(self, mocker) -> None:
        downgrade = mocker.MagicMock()
        mocker.patch.dict(run_migrations.COMMANDS, {"downgrade": (downgrade, ["-1"])})
        cfg = mocker.patch.object(run_migrations, "build_config").return_value

        run_migrations.main(["downgrade", "base"])

        downgrade.assert_called_once_with(cfg, "base")

    def test_unknown_command_exits(self, mocker) -> None:
        mocker.patch.object(run_migrations, "build_config")

        with pytest.raises(SystemExit):
            run_migrations.main(["explode"])

    def test_no_arguments_exits(self) -> None:
        with pytest.raises(SystemExit):
            run_migrations.main([])

    def test_config_points_at_bundled_migrations(self) -> None:
        cfg = run_migrations.build_config()

        assert cfg.get_main_option("script_location").endswith("migrations")
        assert cfg.get_main_option("sqlalchemy.url").startswith("postgresql://")
