"""
ldap3 connection running over a stream that was dialed beforehand.

ldap3 normally resolves the server address and opens its own socket. Sessions
dial the transport themselves (directly or through a SOCKS5 proxy, optionally
upgraded to TLS), so the classes here make ldap3 adopt that stream instead:

- StreamServer: ldap3 Server whose only candidate address is the dialed target
- StreamStrategy: sync strategy that installs the dialed stream as the socket
- StreamConnection: ldap3 Connection wired to StreamStrategy
- LDAPEntry: dictionary-like search result entry with attribute helpers
"""

import socket
from typing import Any, Dict, List, Optional

import ldap3
import ldap3.strategy
import ldap3.strategy.sync
from ldap3.core.exceptions import LDAPSocketOpenError


class LDAPEntry(Dict[str, Any]):
    """
    Dictionary-like class representing an LDAP entry with helper methods.

    Wraps the entry dictionaries ldap3 puts in ``connection.response``.
    """

    @property
    def dn(self) -> str:
        return self.__getitem__("dn") if "dn" in self else ""

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get an attribute value, returning default for missing or empty values.

        Args:
            key: Attribute name to retrieve
            default: Value to return if attribute is missing or empty

        Returns:
            Attribute value if present and not empty, otherwise the default value
        """
        attributes = super().get("attributes") or {}
        if key not in attributes:
            return default

        item = attributes[key]

        if isinstance(item, list) and len(item) == 0:
            return default

        return item

    def get_first(self, key: str, default: Any = None) -> Any:
        """Get the first value of a possibly multi-valued attribute."""
        value = self.get(key)
        if value is None:
            return default
        if isinstance(value, list):
            return value[0]
        return value

    def get_raw(self, key: str) -> Any:
        """Get the raw (undecoded) attribute value, or None if not present."""
        raw_attributes = super().get("raw_attributes") or {}
        if key not in raw_attributes:
            return None

        return raw_attributes[key]


class StreamServer(ldap3.Server):
    """
    ldap3 Server bound to an already dialed host and port.

    The single candidate address keeps ldap3 from resolving the host itself,
    which would fail for names only the proxy can resolve.
    """

    def candidate_addresses(self) -> List[List[Any]]:  # type: ignore[override]
        return [
            [
                socket.AF_INET,
                socket.SOCK_STREAM,
                socket.IPPROTO_TCP,
                "",
                (self.host, self.port),
                None,
                None,
            ]
        ]

    def update_availability(self, address: Any, available: bool) -> None:
        pass


class StreamStrategy(ldap3.strategy.sync.SyncStrategy):
    """
    Synchronous strategy using the connection's pre-dialed stream as its socket.
    """

    def __init__(self, connection: "StreamConnection") -> None:
        super().__init__(connection)
        self._connection = connection

    def _open_socket(
        self, address: Any, use_ssl: bool = False, unix_socket: bool = False
    ) -> None:
        stream = self._connection.dialed_stream
        if stream is None:
            raise LDAPSocketOpenError("transport stream was already used or closed")

        # The stream is single use; reopening requires a new dial
        self._connection.dialed_stream = None

        stream.settimeout(self.connection.receive_timeout or None)
        self.connection.socket = stream
        self.connection.closed = False


class StreamConnection(ldap3.Connection):
    """
    ldap3 Connection adopting a stream dialed (and possibly TLS-wrapped) by the caller.
    """

    def __init__(self, stream: socket.socket, *args: Any, **kwargs: Any) -> None:
        self.dialed_stream: Optional[socket.socket] = stream
        super().__init__(*args, **kwargs)

        # Replace standard strategy with the stream strategy
        self.strategy = StreamStrategy(self)

        # ldap3 aliases strategy methods on the connection; point them at ours
        self.send = self.strategy.send
        self.open = self.strategy.open
        self.get_response = self.strategy.get_response
        self.post_send_single_response = self.strategy.post_send_single_response
        self.post_send_search = self.strategy.post_send_search


def open_connection(
    stream: socket.socket,
    host: str,
    port: int,
    secure: bool,
    timeout: Optional[float] = None,
) -> StreamConnection:
    """
    Start an LDAP session over a connected stream.

    Args:
        stream: Connected stream, already TLS-wrapped when secure
        host: Server host name, for reporting
        port: Server port
        secure: Whether the stream is TLS
        timeout: Receive timeout in seconds, None to wait forever

    Returns:
        Open, not yet bound, connection
    """
    server = StreamServer(host, port=port, use_ssl=secure, get_info=ldap3.NONE)
    connection = StreamConnection(
        stream,
        server,
        auto_bind=ldap3.AUTO_BIND_NONE,
        auto_referrals=False,
        receive_timeout=timeout,
        raise_exceptions=False,
    )
    connection.open(read_server_info=False)
    return connection
