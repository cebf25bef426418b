#!/usr/bin/env python
"""Main entry point for the TypeWriter notes server."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path

from typewriter.config import config
from typewriter.observability import configure_logging, metrics
from typewriter.rpc.boundary import NotesRpc
from typewriter.server.mcp_server import TypeWriterMcpServer
from typewriter.storage.engine import StorageEngine


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="TypeWriter notes server")
    parser.add_argument(
        "--data-dir",
        help="Directory holding the notes database, logs and metrics",
        type=str,
        default=os.environ.get("TYPEWRITER_DATA_DIR"),
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("TYPEWRITER_LOG_LEVEL", "INFO"),
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments."""
    if args.data_dir:
        config.data_dir = Path(args.data_dir)


def _save_metrics_on_exit():
    """Save metrics to disk on server shutdown."""
    try:
        if metrics.save_metrics():
            logging.getLogger(__name__).info("Metrics saved to disk on shutdown")
    except Exception as e:
        logging.getLogger(__name__).warning(f"Failed to save metrics on shutdown: {e}")


def main(argv=None):
    """Run the TypeWriter notes server."""
    args = parse_args(argv)
    update_config(args)

    # Console + persistent file logging with rotation
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(config.get_log_dir(), level=log_level, console=True)
    except Exception as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    metrics.set_metrics_file(config.get_metrics_file())
    atexit.register(_save_metrics_on_exit)

    # The database opens when a client calls "initialize"
    engine = StorageEngine(config.get_database_path(), cache_size=config.cache_size)
    logger.info(f"Using SQLite database: {engine.database_path}")

    try:
        logger.info("Starting TypeWriter MCP server")
        server = TypeWriterMcpServer(NotesRpc(engine, collector=metrics))
        server.run()
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
