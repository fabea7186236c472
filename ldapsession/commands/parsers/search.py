"""
Parser for the search command.
"""

import argparse
from typing import Callable, Tuple

from . import target

NAME = "search"


def entry(options: argparse.Namespace) -> None:
    from ldapsession.commands import search

    search.entry(options)


def add_subparser(subparsers: argparse._SubParsersAction) -> Tuple[str, Callable]:  # type: ignore
    """
    Add the search command subparser to the main parser.

    Returns:
        Tuple of (command_name, entry_function) for command registration
    """
    subparser = subparsers.add_parser(
        NAME,
        help="Search the directory",
        description=(
            "Connect, authenticate and stream the entries matching an LDAP filter. "
            "Referrals and response controls are printed as they arrive."
        ),
    )

    search_group = subparser.add_argument_group("search options")
    _ = search_group.add_argument(
        "-filter",
        action="store",
        metavar="filter",
        default="(objectClass=*)",
        help="LDAP filter (default: (objectClass=*))",
    )
    _ = search_group.add_argument(
        "-attrs",
        action="store",
        metavar="attr1,attr2",
        help="Comma separated attributes to return (default: all)",
    )
    _ = search_group.add_argument(
        "-base",
        action="store",
        metavar="dn",
        help="Search base (default: the default naming context)",
    )
    _ = search_group.add_argument(
        "-scope",
        action="store",
        choices=["base", "level", "subtree"],
        default="subtree",
        help="Search scope (default: subtree)",
    )
    _ = search_group.add_argument(
        "-size-limit",
        action="store",
        metavar="entries",
        type=int,
        default=0,
        help="Maximum number of entries (default: no limit)",
    )
    _ = search_group.add_argument(
        "-page-size",
        action="store",
        metavar="entries",
        type=int,
        default=1000,
        help="Page size for paged searches, 0 disables paging (default: 1000)",
    )

    output_group = subparser.add_argument_group("output options")
    _ = output_group.add_argument(
        "-json",
        action="store_true",
        help="Print one JSON object per entry",
    )

    target.add_argument_group(subparser)

    return NAME, entry
