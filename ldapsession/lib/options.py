"""
Session options.

SessionOptions holds everything needed to establish a session: where the
directory server is, how to reach it, and how to authenticate. Options are
immutable once built; build a new instance to change them.
"""

import argparse
import logging as _logging
from typing import Any, Optional

from ldapsession.lib.constants import DEFAULT_TIMEOUT
from ldapsession.lib.logger import logging


class SessionOptions:
    """
    Immutable parameters of a directory session.

    Attributes:
        domain: DNS name of the domain, used for discovery
        domain_controller: Explicit server to use instead of discovery
        username: Username, ``user@domain`` for NTLM
        password: Password
        hashes: NT hash or ``LM:NT`` pair for pass-the-hash
        use_ntlm: Bind with NTLM instead of a simple bind
        port: Server port, 0 for the protocol default
        secure: Upgrade the connection to TLS (LDAPS)
        proxy: SOCKS5 proxy address
        page_size: Page size for paged searches, 0 to disable paging
        logger: Logger receiving session messages, None for the package logger
        timeout: Connect timeout in seconds
        verify_certificate: Verify the server certificate when secure
        ca_file: CA bundle used to verify the server certificate
        nameserver: Nameserver used for discovery
        dns_tcp: Use TCP for DNS queries
    """

    def __init__(
        self,
        domain: str = "",
        domain_controller: str = "",
        username: str = "",
        password: str = "",
        hashes: str = "",
        use_ntlm: bool = False,
        port: int = 0,
        secure: bool = False,
        proxy: str = "",
        page_size: int = 0,
        logger: Optional[_logging.Logger] = None,
        timeout: float = DEFAULT_TIMEOUT,
        verify_certificate: bool = True,
        ca_file: Optional[str] = None,
        nameserver: Optional[str] = None,
        dns_tcp: bool = False,
    ) -> None:
        if page_size < 0:
            raise ValueError("page_size must not be negative")
        if port < 0 or port > 65535:
            raise ValueError(f"invalid port: {port}")

        self.domain: str = domain
        self.domain_controller: str = domain_controller
        self.username: str = username
        self.password: str = password
        self.hashes: str = hashes
        self.use_ntlm: bool = use_ntlm
        self.port: int = port
        self.secure: bool = secure
        self.proxy: str = proxy
        self.page_size: int = page_size
        self.logger: Optional[_logging.Logger] = logger
        self.timeout: float = timeout
        self.verify_certificate: bool = verify_certificate
        self.ca_file: Optional[str] = ca_file
        self.nameserver: Optional[str] = nameserver
        self.dns_tcp: bool = dns_tcp

        self._frozen = True

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise AttributeError(f"SessionOptions is immutable, cannot set {name!r}")
        super().__setattr__(name, value)

    def __repr__(self) -> str:
        fields = {
            key: value
            for key, value in self.__dict__.items()
            if key not in ("password", "hashes", "_frozen")
        }
        return f"<SessionOptions ({fields!r})>"

    @staticmethod
    def from_options(
        options: argparse.Namespace, logger: Optional[_logging.Logger] = None
    ) -> "SessionOptions":
        """
        Create SessionOptions from command line options.

        The domain is taken from ``-domain`` or, failing that, from the
        ``user@domain`` form of the username.

        Args:
            options: Command line options
            logger: Logger handed to the session

        Returns:
            SessionOptions: Configured options
        """
        username = getattr(options, "username", None) or ""
        password = getattr(options, "password", None)
        hashes = getattr(options, "hashes", None) or ""
        no_pass = getattr(options, "no_pass", False)
        use_ntlm = getattr(options, "use_ntlm", False)

        domain = getattr(options, "domain", None) or ""
        if not domain and "@" in username:
            domain = username.split("@", 1)[1]

        # Prompt for the password unless anonymous, hash-based or told not to
        if password is None and username and not hashes and not no_pass:
            from getpass import getpass

            password = getpass("Password:")

        dc = getattr(options, "dc", None) or ""

        logging.debug(f"Domain: {domain!r}")
        logging.debug(f"Domain controller: {dc!r}")
        logging.debug(f"Username: {username!r}")

        return SessionOptions(
            domain=domain,
            domain_controller=dc,
            username=username,
            password=password or "",
            hashes=hashes,
            use_ntlm=use_ntlm,
            port=getattr(options, "port", None) or 0,
            secure=getattr(options, "secure", False),
            proxy=getattr(options, "proxy", None) or "",
            page_size=getattr(options, "page_size", 0) or 0,
            logger=logger,
            timeout=getattr(options, "timeout", DEFAULT_TIMEOUT),
            verify_certificate=not getattr(options, "insecure", False),
            ca_file=getattr(options, "ca_file", None),
            nameserver=getattr(options, "ns", None),
            dns_tcp=getattr(options, "dns_tcp", False),
        )
