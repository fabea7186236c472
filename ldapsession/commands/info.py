"""
Info command.

Prints the domain information advertised in the rootDSE of the server.
"""

import argparse
from typing import Any, Callable, Dict

from ldapsession.lib.formatting import pretty_print, to_json
from ldapsession.lib.options import SessionOptions
from ldapsession.lib.session import LDAPSession, establish_session


def domain_summary(session: LDAPSession) -> Dict[str, Any]:
    """Collect the base DN and domain information of a session."""
    info = session.get_domain_info()
    summary: Dict[str, Any] = {"Base DN": session.base_dn}
    summary.update(info.to_dict())
    return summary


def show(
    session: LDAPSession, json: bool = False, print_func: Callable[..., Any] = print
) -> None:
    summary = domain_summary(session)
    if json:
        print_func(to_json(summary))
    else:
        pretty_print(summary, print_func=print_func)


def entry(options: argparse.Namespace) -> None:
    """
    Entry point for the 'info' command.

    Args:
        options: Command-line arguments
    """
    session = establish_session(SessionOptions.from_options(options))
    try:
        show(session, json=options.json)
    finally:
        session.close()
