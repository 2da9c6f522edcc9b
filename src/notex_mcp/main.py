#!/usr/bin/env python
"""Main entry point for the NoteX MCP server."""
import argparse
import logging
import os
import sys
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from notex_mcp.config import NotexConfig, config
from notex_mcp.exceptions import ConfigurationError
from notex_mcp.models.db_models import init_db
from notex_mcp.observability import configure_logging
from notex_mcp.server.mcp_server import NotexMcpServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="NoteX MCP Server")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("NOTEX_DATABASE_PATH")
    )
    parser.add_argument(
        "--in-memory",
        help="Use a throwaway in-memory database",
        action="store_true",
    )
    parser.add_argument(
        "--case-insensitive-titles",
        help="Resolve [[wiki-links]] to titles regardless of case",
        action="store_true",
    )
    parser.add_argument(
        "--trash-retention-days",
        help="Days a trashed note is kept before the purge sweep removes it",
        type=int,
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files",
        type=str,
        default=os.environ.get("NOTEX_LOG_DIR")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("NOTEX_LOG_LEVEL", "INFO")
    )
    return parser.parse_args(argv)


def update_config(args) -> None:
    """Apply command line overrides to the global config.

    Raises:
        ConfigurationError: If the resulting configuration is invalid.
    """
    overrides = {}
    if args.database_path:
        overrides["database_path"] = Path(args.database_path)
    if args.in_memory:
        overrides["in_memory_db"] = True
    if args.case_insensitive_titles:
        overrides["title_match_case_sensitive"] = False
    if args.trash_retention_days is not None:
        overrides["trash_retention_days"] = args.trash_retention_days
    if args.log_dir:
        overrides["log_dir"] = Path(args.log_dir)
    if not overrides:
        return

    try:
        validated = NotexConfig.model_validate({**config.model_dump(), **overrides})
    except PydanticValidationError as e:
        key = str(e.errors()[0]["loc"][0]) if e.errors()[0]["loc"] else None
        raise ConfigurationError(f"Invalid configuration: {e}", config_key=key) from e

    for name in overrides:
        setattr(config, name, getattr(validated, name))


def main(argv=None):
    """Run the NoteX MCP server."""
    args = parse_args(argv)

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=args.log_dir or config.log_dir, level=log_level)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    try:
        update_config(args)
    except ConfigurationError as e:
        logger.error(str(e))
        sys.exit(2)

    # Initialize database schema; one engine shared by all repositories
    try:
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        engine = init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    try:
        logger.info("Starting NoteX MCP server")
        server = NotexMcpServer(engine=engine)
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
