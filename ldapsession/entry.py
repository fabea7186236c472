# PYTHON_ARGCOMPLETE_OK
"""
Command line front end.

Subcommands are registered from ENTRY_PARSERS; each parser module returns its
name and a lazily importing entry function.
"""

import argparse
import logging
import sys
from typing import Callable, Dict, List, Optional, Tuple

import argcomplete

from ldapsession import version
from ldapsession.commands.parsers import ENTRY_PARSERS
from ldapsession.lib import logger
from ldapsession.lib.errors import SessionError, handle_error

DEBUG_FLAGS = ("-debug", "--debug")
VERSION_FLAGS = ("-v", "-version", "--version")


def split_debug_flag(argv: List[str]) -> Tuple[List[str], bool]:
    """Strip the debug flags, which are accepted anywhere on the command line."""
    remaining = [arg for arg in argv if arg not in DEBUG_FLAGS]
    return remaining, len(remaining) != len(argv)


def build_parser() -> Tuple[argparse.ArgumentParser, Dict[str, Callable]]:
    """
    Build the argument parser and the action table.

    Returns:
        The parser and a mapping of subcommand name to entry function
    """
    parser = argparse.ArgumentParser(
        prog="ldapsession",
        add_help=False,
        description="Authenticated LDAP sessions with streaming search results",
    )

    _ = parser.add_argument(
        "-v",
        "--version",
        action="store_true",
        help="Show the version number and exit",
        default=argparse.SUPPRESS,
    )
    _ = parser.add_argument(
        "-h",
        "--help",
        action="help",
        default=argparse.SUPPRESS,
        help="Show this help message and exit",
    )

    subparsers = parser.add_subparsers(help="Action", dest="action", required=True)

    actions: Dict[str, Callable] = {}
    for entry_parser in ENTRY_PARSERS:
        action, entry = entry_parser.add_subparser(subparsers)
        actions[action] = entry

    return parser, actions


def run(options: argparse.Namespace, actions: Dict[str, Callable]) -> int:
    """
    Dispatch to the selected subcommand.

    Returns:
        Process exit code
    """
    try:
        actions[options.action](options)
    except SessionError as e:
        logger.logging.error(f"{type(e).__name__}: {e}")
        handle_error()
        return 1
    except KeyboardInterrupt:
        logger.logging.warning("Interrupted")
        return 130
    except Exception as e:
        logger.logging.error(f"Got error: {e}")
        handle_error()
        return 1

    return 0


def main(argv: Optional[List[str]] = None) -> None:
    logger.init()

    argv, debug = split_debug_flag(sys.argv[1:] if argv is None else argv)
    logger.logging.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.set_verbose(debug)

    print(version.BANNER, file=sys.stderr)

    if any(arg.lower() in VERSION_FLAGS for arg in argv):
        return

    parser, actions = build_parser()
    argcomplete.autocomplete(parser, always_complete_options=False)

    if not argv:
        parser.print_help()
        sys.exit(1)

    options = parser.parse_args(argv)
    sys.exit(run(options, actions))


if __name__ == "__main__":
    main()
