"""
Command-line interface for Pipeline Doctor.

Subcommands:
    handle    Run the controller on event envelopes read from a JSON file
    show      Print the stored retry state of an incident
    serve     Run the HTTP receiver
    config    Show or validate configuration
    version   Show version information
"""
import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

from . import __version__
from .classifier import classify
from .config import DoctorConfig
from .exceptions import ConfigurationError, DoctorError, EventParseError
from .events import parse_event
from .factory import create_controller
from .logging_config import configure_cli_logging
from .storage.factory import create_store

logger = logging.getLogger(__name__)


def load_envelopes(path: Path) -> List[Dict[str, Any]]:
    """
    Read one envelope or a JSON list of envelopes from a file.

    Raises:
        ValueError: If the file is not valid JSON
    """
    with open(path, 'r') as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"{path} is not valid JSON: {e}") from e
    return payload if isinstance(payload, list) else [payload]


def _load_config(args: argparse.Namespace) -> DoctorConfig:
    return DoctorConfig.load(args.config_file)


def handle_handle(args: argparse.Namespace) -> int:
    """
    Handle the handle subcommand.

    With ``--dry-run`` the envelopes are only normalized and classified on
    their event detail; no orchestration, store or notification call is made.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        envelopes = load_envelopes(Path(args.input))
    except (OSError, ValueError) as e:
        print(f"ERROR: {e}")
        return 1

    if args.dry_run:
        for envelope in envelopes:
            try:
                event = parse_event(envelope)
            except EventParseError as e:
                print(f"ERROR: {e}")
                return 1
            if event is None:
                print(json.dumps({"outcome": "ignored"}))
            else:
                print(json.dumps({
                    "outcome": "planned",
                    "identity": event.identity,
                    "action": classify(event).value,
                }))
        return 0

    try:
        config = _load_config(args)
        controller = create_controller(config)
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        return 1

    for envelope in envelopes:
        try:
            outcome = asyncio.run(controller.handle_envelope(envelope))
        except DoctorError as e:
            logger.error(f"Event handling failed: {e}", exc_info=args.verbose)
            print(f"ERROR: {e}")
            return 1
        print(json.dumps(outcome.to_dict()))

    return 0


def handle_show(args: argparse.Namespace) -> int:
    """Handle the show subcommand."""
    try:
        config = _load_config(args)
        config.validate()
        store = create_store(config)
        incident = asyncio.run(store.get(args.identity))
    except DoctorError as e:
        print(f"ERROR: {e}")
        return 1

    if incident is None:
        print(f"No incident recorded for {args.identity}")
        return 1

    print(json.dumps(incident.to_dict(), indent=2))
    return 0


def handle_serve(args: argparse.Namespace) -> int:
    """Handle the serve subcommand."""
    from .web.app import run_server

    try:
        config = _load_config(args)
        controller = create_controller(config)
    except ConfigurationError as e:
        print(f"ERROR: {e}")
        return 1

    run_server(
        controller,
        host=args.host,
        port=args.port,
        webhook_secret=config.webhook_secret,
        debug=args.debug
    )
    return 0


def handle_version(args: argparse.Namespace) -> int:
    """
    Handle the version subcommand.

    Returns:
        Exit code (0 for success)
    """
    print(f"Pipeline Doctor version {__version__}")
    print("Self-healing controller for build and pipeline failures")

    if args.verbose:
        print(f"\nPython: {sys.version}")

    return 0


def handle_config(args: argparse.Namespace) -> int:
    """
    Handle the config subcommand.

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    try:
        config = _load_config(args)
    except (OSError, ValueError) as e:
        print(f"ERROR: {e}")
        return 1

    if args.action == "validate":
        try:
            config.validate()
        except ConfigurationError as e:
            print(f"ERROR: {e}")
            return 1
        print("✓ Configuration is valid")
        return 0

    print("Current Pipeline Doctor Configuration:")
    print(f"  Store: {config.store_backend} ({config.table_name or config.sqlite_path})")
    print(f"  Max Retries: {config.max_retries}")
    print(f"  Timeout Ceiling: {config.timeout_ceiling_minutes} minutes")
    print(f"  Backoff: {config.backoff_seconds} seconds")
    print(f"  Stage Retry Mode: {config.stage_retry_mode}")

    if args.verbose:
        print("\nFull configuration:")
        print(json.dumps(config.to_dict(), indent=2))

    return 0


def create_parser() -> argparse.ArgumentParser:
    """
    Create and configure the argument parser with subcommands.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog="pipeline-doctor",
        description="Pipeline Doctor: self-healing controller for build and pipeline failures",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Replay a captured EventBridge event
  %(prog)s handle event.json
  %(prog)s handle event.json --dry-run

  # Inspect retry state
  %(prog)s show codebuild:my-project:1234

  # Run the HTTP receiver
  %(prog)s serve --port 8080

  # Show version and configuration
  %(prog)s version
  %(prog)s config show
  %(prog)s config validate

Environment Variables:
  TABLE                    DynamoDB incident table
  TOPIC_ARN                SNS topic for escalations
  MAX_RETRIES              Remediation attempts before escalating (default: 2)
  PIPELINE_DOCTOR_STORE_BACKEND   dynamodb, sqlite or memory
        """
    )

    # Global flags (available to all subcommands)
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only show warnings and errors"
    )
    parser.add_argument(
        "--config-file",
        metavar="PATH",
        help="Path to configuration file"
    )

    subparsers = parser.add_subparsers(
        dest="subcommand",
        help="Available subcommands"
    )

    handle_parser = subparsers.add_parser(
        "handle",
        help="Handle event envelopes from a JSON file"
    )
    handle_parser.add_argument(
        "input",
        help="JSON file holding one envelope or a list of envelopes"
    )
    handle_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the planned action for each envelope"
    )
    handle_parser.set_defaults(func=handle_handle)

    show_parser = subparsers.add_parser(
        "show",
        help="Show stored retry state for an incident"
    )
    show_parser.add_argument(
        "identity",
        help="Incident identity, e.g. codebuild:<build-id>"
    )
    show_parser.set_defaults(func=handle_show)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP event receiver"
    )
    serve_parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=8080, help="Port to listen on")
    serve_parser.add_argument("--debug", action="store_true", help="Enable Flask debug mode")
    serve_parser.set_defaults(func=handle_serve)

    version_parser = subparsers.add_parser(
        "version",
        help="Show version information"
    )
    version_parser.set_defaults(func=handle_version)

    config_parser = subparsers.add_parser(
        "config",
        help="Show or validate configuration"
    )
    config_parser.add_argument(
        "action",
        nargs="?",
        choices=["show", "validate"],
        default="show",
        help="Config action (default: show)"
    )
    config_parser.set_defaults(func=handle_config)

    return parser


def main(argv: List[str] = None) -> None:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_cli_logging(verbose=args.verbose, quiet=args.quiet)

    if not hasattr(args, 'func'):
        parser.print_help()
        sys.exit(1)

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
