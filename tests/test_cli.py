import pytest

import run_migration
from fast_migrate.errors import AuthenticationFailure, ConfigError
from fast_migrate.models import APPLICATION
from fast_migrate.summary import CREATED, FAILED, MigrationSummary


class FakeConfigLoader:
    def setup_logging(self):
        pass


class FakeSettings:
    config_loader = FakeConfigLoader()


def test_parser_accepts_both_providers():
    parser = run_migration.build_parser()

    assert vars(parser.parse_args(["okta", "fast-migrate"])) == {"provider": "okta", "action": "fast-migrate"}
    assert parser.parse_args(["onelogin", "fast-migrate"]).provider == "onelogin"
    with pytest.raises(SystemExit):
        parser.parse_args(["okta", "fast-migrate", "--dry-run"])


def test_main_prints_summary_and_returns_exit_code(monkeypatch, capsys):
    summary = MigrationSummary("okta")
    summary.record(APPLICATION, CREATED, "0oa1")
    summary.record(APPLICATION, FAILED, "0oa2", "ValidationError: bad")
    monkeypatch.setattr(run_migration, "load_migration_settings", lambda provider: FakeSettings())
    monkeypatch.setattr(run_migration, "run_fast_migrate", lambda provider, settings: summary)

    code = run_migration.main(["okta", "fast-migrate"])

    assert code == 1
    assert capsys.readouterr().out == summary.render()


@pytest.mark.parametrize("error", [ConfigError("no config"), AuthenticationFailure("401")])
def test_fatal_errors_exit_with_two(monkeypatch, capsys, error):
    def fail(provider, settings):
        raise error

    monkeypatch.setattr(run_migration, "load_migration_settings", lambda provider: FakeSettings())
    monkeypatch.setattr(run_migration, "run_fast_migrate", fail)

    assert run_migration.main(["onelogin", "fast-migrate"]) == 2
    assert "Fast-migrate aborted" in capsys.readouterr().err
