import asyncio
import logging
import sys

import click

from .config import LOG_FORMAT, SalesforceCredentials
from .tools import ConsolePrompter, handle_dml_records
from .tools.base import connect_from_credentials

# Configure logging
logger = logging.getLogger(__name__)


@click.command()
@click.option("--log-level", default="WARNING", help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")
def create_case(log_level: str) -> None:
    """Create a Case from the terminal by walking through the guided prompts."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=LOG_FORMAT,
    )

    click.echo("Establishing Salesforce connection...")
    try:
        conn = connect_from_credentials(SalesforceCredentials.from_env())
    except Exception as e:
        logger.exception(f"Error connecting to Salesforce: {e}")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    result = asyncio.run(
        handle_dml_records(conn, "insert", "Case", [], prompter=ConsolePrompter())
    )
    click.echo(result.text, err=result.is_error)
    if result.is_error:
        sys.exit(1)


if __name__ == "__main__":
    create_case()
