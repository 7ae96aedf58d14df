"""Main module entrypoint for local runtime execution.

This module validates startup configuration and launches the FastAPI service
or one ledger maintenance command.
"""

import argparse

import uvicorn

from app.bootstrap import (
    bootstrap_create_application,
    bootstrap_create_ledger_service,
    bootstrap_create_migration_orchestrator,
)
from app.config import config_load_settings


def main() -> None:
    """Run selected runtime command with validated startup configuration.

    Returns:
        None: This function does not return a runtime value.

    Raises:
        SettingsLoadError: Raised when configuration validation fails.
        SystemExit: Raised with code 1 when a maintenance command fails.
    """

    argument_parser = argparse.ArgumentParser(description="Trade journal ledger runtime entrypoint")
    argument_parser.add_argument(
        "command",
        nargs="?",
        default="api",
        choices=("api", "fifo-migrate", "fifo-recalculate"),
        help="Runtime command: `api` starts server, `fifo-migrate` recalculates every pair, "
        "`fifo-recalculate` recalculates one pair",
        type=str,
    )
    argument_parser.add_argument(
        "--account-id",
        dest="account_id",
        type=str,
        help="Account identifier for `fifo-recalculate`",
    )
    argument_parser.add_argument(
        "--instrument-id",
        dest="instrument_id",
        type=str,
        help="Instrument identifier for `fifo-recalculate`",
    )
    parsed_arguments = argument_parser.parse_args()

    if parsed_arguments.command == "fifo-migrate":
        migration_orchestrator = bootstrap_create_migration_orchestrator()
        execution_result = migration_orchestrator.job_execute(job_name="fifo_migration")
        if execution_result.status != "success":
            raise SystemExit(1)
        return

    if parsed_arguments.command == "fifo-recalculate":
        if not parsed_arguments.account_id or not parsed_arguments.instrument_id:
            argument_parser.error("`fifo-recalculate` requires --account-id and --instrument-id")
        ledger_service = bootstrap_create_ledger_service()
        recalculation = ledger_service.ledger_recalculate_pair(
            account_id=parsed_arguments.account_id,
            instrument_id=parsed_arguments.instrument_id,
        )
        print(
            "FIFO_RECALCULATED:",
            f"account_id={recalculation.pair_key.account_id}",
            f"instrument_id={recalculation.pair_key.instrument_id}",
            f"buy_count={recalculation.buy_count}",
            f"sell_count={recalculation.sell_count}",
            f"shortfall_count={recalculation.shortfall_count}",
        )
        return

    settings = config_load_settings()
    application = bootstrap_create_application()
    uvicorn.run(
        application,
        host=settings.application_host,
        port=settings.application_port,
    )


if __name__ == "__main__":
    main()
