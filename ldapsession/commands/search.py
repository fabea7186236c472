"""
Search command.

Establishes a session and prints the entries matching a filter while they are
streamed, with referrals and response controls printed as they arrive.
"""

import argparse
import threading
from typing import Any, Callable, List, Optional, Union

import ldap3

from ldapsession.lib.channels import Context
from ldapsession.lib.connection import LDAPEntry
from ldapsession.lib.constants import PAGED_RESULTS_OID
from ldapsession.lib.formatting import pretty_print, to_json
from ldapsession.lib.logger import logging
from ldapsession.lib.options import SessionOptions
from ldapsession.lib.session import LDAPSession, establish_session

SCOPES = {
    "base": ldap3.BASE,
    "level": ldap3.LEVEL,
    "subtree": ldap3.SUBTREE,
}


class Search:
    def __init__(
        self,
        options: SessionOptions,
        search_filter: str = "(objectClass=*)",
        attributes: Union[str, List[str]] = ldap3.ALL_ATTRIBUTES,
        search_base: Optional[str] = None,
        scope: str = "subtree",
        size_limit: int = 0,
        json: bool = False,
        session: Optional[LDAPSession] = None,
        print_func: Callable[..., Any] = print,
    ):
        self.options = options
        self.search_filter = search_filter
        self.attributes = attributes
        self.search_base = search_base
        self.scope = SCOPES[scope]
        self.size_limit = size_limit
        self.json = json
        self.print_func = print_func

        self._session = session
        self._print_lock = threading.Lock()

    @property
    def session(self) -> LDAPSession:
        if self._session is None:
            self._session = establish_session(self.options)
        return self._session

    def _print_entry(self, entry: LDAPEntry) -> None:
        with self._print_lock:
            if self.json:
                self.print_func(
                    to_json({"dn": entry.dn, "attributes": dict(entry["attributes"])})
                )
            else:
                self.print_func(entry.dn)
                pretty_print(
                    dict(entry["attributes"]), indent=1, print_func=self.print_func
                )
                self.print_func()

    def _print_referral(self, uri: str) -> None:
        with self._print_lock:
            logging.info(f"Referral: {uri}")

    def _print_control(self, control: Any) -> None:
        # Paging cookies are noise on the console
        if control.oid == PAGED_RESULTS_OID:
            return
        with self._print_lock:
            logging.debug(f"Control {control.oid} ({control.description}): {control.value!r}")

    def run(self) -> int:
        """
        Run the search, printing results from consumer threads.

        Returns:
            Number of entries printed
        """
        session = self.session
        context = Context()
        channels = session.attach_channels(context)

        consumers = [
            (channels.entries, self._print_entry),
            (channels.referrals, self._print_referral),
            (channels.controls, self._print_control),
        ]

        def consume(channel: Any, handler: Callable[[Any], None]) -> None:
            for item in channel:
                try:
                    handler(item)
                except Exception as e:
                    logging.error(f"Failed to print result: {e}")
                    context.cancel()

        threads = [
            threading.Thread(target=consume, args=consumer, daemon=True)
            for consumer in consumers
        ]
        for thread in threads:
            thread.start()

        try:
            count = session.search(
                self.search_filter,
                attributes=self.attributes,
                search_base=self.search_base,
                search_scope=self.scope,
                size_limit=self.size_limit,
            )
        except BaseException:
            context.cancel()
            if not channels.closed:
                channels.close()
            raise
        finally:
            for thread in threads:
                thread.join()

        logging.info(f"Got {count} entries")
        return count

    def close(self) -> None:
        if self._session is not None:
            self._session.close()


def entry(options: argparse.Namespace) -> None:
    """
    Entry point for the 'search' command.

    Args:
        options: Command-line arguments
    """
    session_options = SessionOptions.from_options(options)

    attributes: Union[str, List[str]] = ldap3.ALL_ATTRIBUTES
    if options.attrs:
        attributes = [attr.strip() for attr in options.attrs.split(",") if attr.strip()]

    search = Search(
        session_options,
        search_filter=options.filter,
        attributes=attributes,
        search_base=options.base,
        scope=options.scope,
        size_limit=options.size_limit,
        json=options.json,
    )
    try:
        _ = search.run()
    finally:
        search.close()
