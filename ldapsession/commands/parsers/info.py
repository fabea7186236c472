"""
Parser for the info command.
"""

import argparse
from typing import Callable, Tuple

from . import target

NAME = "info"


def entry(options: argparse.Namespace) -> None:
    from ldapsession.commands import info

    info.entry(options)


def add_subparser(subparsers: argparse._SubParsersAction) -> Tuple[str, Callable]:  # type: ignore
    subparser = subparsers.add_parser(
        NAME,
        help="Show domain information",
        description=(
            "Connect, authenticate and print the functional levels and host name "
            "advertised by the domain controller."
        ),
    )

    output_group = subparser.add_argument_group("output options")
    _ = output_group.add_argument(
        "-json",
        action="store_true",
        help="Print the information as JSON",
    )

    target.add_argument_group(subparser)

    return NAME, entry
