"""
Browse the address space of an OPC UA server and print every node

Starts at the Objects folder, walks Object and View nodes depth-first and
prints name, node id, node class and, for variables, the current value.
"""

import asyncio
import argparse
import sys
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
import logging

from address_space import OBJECTS_FOLDER, browse_address_space
from node_format import TIMESTAMP_FORMAT, format_node_id
from opc_utils import DEFAULT_TIMEOUT_MS, ConnectionFailed, UaSession, format_status

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "opc.tcp://localhost:4840"

BANNER = "=" * 45

SWITCH_OPTIONS = ("-v", "--verbose")
VALUE_OPTIONS = ("-t", "--timeout", "-d", "--max-depth")


@dataclass
class BrowseOptions:
    url: str = DEFAULT_SERVER_URL
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    verbose: bool = False
    max_depth: Optional[int] = None


class BrowseArgumentParser(argparse.ArgumentParser):
    """Argument parser that exits with status 1 on usage errors"""

    def error(self, message):
        self.exit(1, f"Error: {message}\nUse {self.prog} -h for help\n")


def positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Timeout must be a positive integer, got '{text}'")
    if value <= 0:
        raise argparse.ArgumentTypeError("Timeout must be positive")
    return value


def non_negative_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Depth must be a non-negative integer, got '{text}'")
    if value < 0:
        raise argparse.ArgumentTypeError("Depth must not be negative")
    return value


def build_parser() -> BrowseArgumentParser:
    parser = BrowseArgumentParser(
        prog="opc-browse",
        allow_abbrev=False,
        description="Recursively browse the Objects folder of an OPC UA server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  opc-browse opc.tcp://10.0.0.128:4840\n"
            "  opc-browse -v opc.tcp://opcua-esp32:4840\n"
            "  opc-browse -t 10000 opc.tcp://10.0.0.128:4840\n\n"
            "For testing and diagnostics. Run without arguments to see this help."
        ),
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "-t",
        "--timeout",
        type=positive_int,
        default=DEFAULT_TIMEOUT_MS,
        metavar="N",
        help=f"Set connection timeout in ms (default: {DEFAULT_TIMEOUT_MS})",
    )
    parser.add_argument(
        "-d",
        "--max-depth",
        type=non_negative_int,
        default=None,
        metavar="N",
        help="Do not expand nodes deeper than N levels below Objects (default: unlimited)",
    )
    parser.add_argument(
        "urls",
        nargs="*",
        default=[],
        metavar="SERVER_URL",
        help=f"OPC UA server endpoint (default: {DEFAULT_SERVER_URL}); only the first is used",
    )
    return parser


def check_options(argv: List[str], parser: argparse.ArgumentParser):
    """Reject every token starting with '-' that is not a known option or an option value"""
    expect_value = False
    for token in argv:
        if expect_value:
            expect_value = False
        elif token in VALUE_OPTIONS:
            expect_value = True
        elif token in SWITCH_OPTIONS or token.startswith(("--timeout=", "--max-depth=")):
            continue
        elif token.startswith("-"):
            parser.error(f"unrecognized option: {token}")


def parse_args(argv: List[str], parser: Optional[argparse.ArgumentParser] = None) -> BrowseOptions:
    """
    Parse command line arguments

    Exits with status 0 after -h and with status 1 on invalid arguments.
    """
    parser = parser or build_parser()
    # Help wins over any other argument, valid or not
    if "-h" in argv or "--help" in argv:
        parser.print_help()
        parser.exit(0)
    check_options(argv, parser)
    args = parser.parse_intermixed_args(argv)
    return BrowseOptions(
        url=args.urls[0] if args.urls else DEFAULT_SERVER_URL,
        timeout_ms=args.timeout,
        verbose=args.verbose,
        max_depth=args.max_depth,
    )


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    # Keep the client stack quiet, its INFO output is per request
    logging.getLogger("asyncua").setLevel(logging.WARNING)


async def run(options: BrowseOptions, session_factory=UaSession) -> int:
    """
    Connect, browse from the Objects folder, disconnect and print a summary

    Args:
        options: Parsed command line options
        session_factory: Callable (url, timeout_ms) returning a session

    Returns:
        Process exit code
    """
    print(BANNER)
    print("   OPC UA Server Browser")
    print(BANNER)
    print()

    if options.verbose:
        print("Verbose mode enabled")
        print(f"Connection timeout: {options.timeout_ms} ms")
    print(f"Connecting to {options.url}...")

    try:
        async with session_factory(options.url, options.timeout_ms) as session:
            print("Connected successfully!")
            print()

            if options.verbose:
                print("=== CONNECTION DETAILS ===")
                print(f"Connection time: {datetime.now().strftime(TIMESTAMP_FORMAT)}")
                print(f"Timeout configured: {options.timeout_ms} ms")
                if options.max_depth is not None:
                    print(f"Maximum depth: {options.max_depth}")
                print()

            print("=== RECURSIVE BROWSING OF OBJECTS FOLDER ===")
            if options.verbose:
                print(f"Starting from ObjectsFolder ({format_node_id(OBJECTS_FOLDER)})")
                print("Depth-first traversal...")
                print()

            summary = await browse_address_space(
                session,
                OBJECTS_FOLDER,
                max_depth=options.max_depth,
                verbose=options.verbose,
            )
    except ConnectionFailed as e:
        logger.debug(str(e))
        print(f"Connection failed: {format_status(e.status)}")
        return 1

    print()
    print("=== BROWSING COMPLETED ===")
    print(f"Server URL: {options.url}")
    print(f"Nodes visited: {summary.visited}")
    if options.verbose:
        print(f"Nodes skipped: {summary.skipped}")
        print(f"Value read errors: {summary.value_errors}")
        print(f"Repeated references ignored: {summary.repeated}")
    print("Disconnected from server")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0

    options = parse_args(argv, parser)
    configure_logging(options.verbose)
    return asyncio.run(run(options))


if __name__ == "__main__":
    sys.exit(main())
