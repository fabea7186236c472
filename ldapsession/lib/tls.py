"""
TLS upgrade of an established transport stream.

Certificates are verified unless the caller explicitly opts out, in which case
any server certificate is accepted and a warning is logged.
"""

import socket
import ssl
from typing import Any, Optional

from ldapsession.lib.errors import TLSHandshakeError
from ldapsession.lib.logger import logging


class TlsPolicy:
    """
    Certificate verification policy used for the TLS handshake.

    Attributes:
        verify: Validate the certificate chain and host name
        ca_file: Optional CA bundle used instead of the system store
    """

    def __init__(self, verify: bool = True, ca_file: Optional[str] = None) -> None:
        self.verify = verify
        self.ca_file = ca_file

    def __repr__(self) -> str:
        return f"<TlsPolicy verify={self.verify} ca_file={self.ca_file!r}>"

    def create_context(self) -> ssl.SSLContext:
        """Build the client SSL context for this policy."""
        context = ssl.create_default_context(
            ssl.Purpose.SERVER_AUTH, cafile=self.ca_file
        )

        if not self.verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        return context


def upgrade(
    stream: socket.socket,
    secure: bool,
    server_hostname: str,
    policy: Optional[TlsPolicy] = None,
    log: Any = logging,
) -> socket.socket:
    """
    Wrap an established stream in a TLS client connection.

    Args:
        stream: Connected stream returned by the dialer
        secure: Whether TLS was requested; the stream is returned as is otherwise
        server_hostname: Name used for SNI and host name verification
        policy: Verification policy, verifying certificates by default
        log: Logger receiving progress messages

    Returns:
        The original stream, or the TLS-wrapped stream

    Raises:
        TLSHandshakeError: If the handshake fails
    """
    if not secure:
        return stream

    if policy is None:
        policy = TlsPolicy()

    if not policy.verify:
        log.warning(
            f"Certificate verification disabled for {server_hostname!r}, "
            "the server identity is not checked"
        )

    try:
        context = policy.create_context()
        tls_stream = context.wrap_socket(
            stream, server_hostname=server_hostname, do_handshake_on_connect=True
        )
    except (ssl.SSLError, OSError) as e:
        stream.close()
        raise TLSHandshakeError(
            f"TLS handshake with {server_hostname!r} failed: {e}",
            step="tls",
            target=server_hostname,
        ) from e

    log.debug(f"TLS connection established ({tls_stream.version()})")
    return tls_stream
