"""
Fast-migrate command runner.

    fast-migrate-cli okta fast-migrate
    fast-migrate-cli onelogin fast-migrate

All settings come from configs/config.json, the credentials file and the
environment; the command takes no flags.
"""
import argparse
import logging
import sys

from fast_migrate.config import load_migration_settings
from fast_migrate.connectors import CONNECTORS
from fast_migrate.engine import run_fast_migrate
from fast_migrate.errors import MigrationError

logger = logging.getLogger("fast_migrate.cli")

EXIT_FATAL = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fast-migrate-cli",
        description="Migrate SSO applications and their assignments into the identity platform",
    )
    providers = parser.add_subparsers(dest="provider", required=True)
    for provider in sorted(CONNECTORS):
        provider_parser = providers.add_parser(provider, help=f"{provider} commands")
        actions = provider_parser.add_subparsers(dest="action", required=True)
        actions.add_parser("fast-migrate", help=f"Migrate applications off {provider}")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_migration_settings(args.provider)
        settings.config_loader.setup_logging()
        summary = run_fast_migrate(args.provider, settings=settings)
    except MigrationError as exc:
        logger.error("Fast-migrate aborted: %s", exc)
        print(f"Fast-migrate aborted: {exc}", file=sys.stderr)
        return EXIT_FATAL

    print(summary.render(), end="")
    return summary.exit_code


if __name__ == "__main__":
    sys.exit(main())
