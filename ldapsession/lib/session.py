"""
Directory session establishment and result streaming.

establish_session() runs the establishment sequence:

1. Resolve the server (explicit, or first DNS SRV candidate)
2. Dial the transport, optionally through a SOCKS5 proxy, and upgrade to TLS
3. Start the LDAP session on the stream
4. Bind (anonymous, simple, NTLM or NTLM pass-the-hash)
5. Resolve and cache the default naming context
6. Attach a fresh result channel set

The returned LDAPSession streams search results into its ResultChannels. The
underlying connection is not safe for concurrent operations: only one search
or bind may be in flight per session, callers serialize access themselves.
"""

import threading
from typing import Any, Callable, List, NamedTuple, Optional, Union

import ldap3
from ldap3.core.exceptions import LDAPException
from ldap3.core.results import (
    RESULT_REFERRAL,
    RESULT_SIZE_LIMIT_EXCEEDED,
    RESULT_SUCCESS,
)

from ldapsession.lib import auth
from ldapsession.lib.channels import Context, Control, ResultChannels
from ldapsession.lib.connection import LDAPEntry, open_connection
from ldapsession.lib.constants import (
    DEFAULT_NAMING_CONTEXT,
    DNS_HOST_NAME,
    DOMAIN_CONTROLLER_FUNCTIONALITY,
    DOMAIN_FUNCTIONALITY,
    FOREST_FUNCTIONALITY,
    FUNCTIONALITY_LEVELS,
    PAGED_RESULTS_OID,
)
from ldapsession.lib.discovery import DnsResolver
from ldapsession.lib.errors import (
    ChannelLifecycleError,
    DirectoryError,
    OperationCancelledError,
    SessionError,
    TransportError,
    describe_ldap_result,
)
from ldapsession.lib.logger import get_session_logger
from ldapsession.lib.options import SessionOptions
from ldapsession.lib.tls import TlsPolicy, upgrade
from ldapsession.lib.transport import Dialer, resolve_port

# Result codes after which the entries received so far are still delivered
_USABLE_RESULTS = (RESULT_SUCCESS, RESULT_SIZE_LIMIT_EXCEEDED, RESULT_REFERRAL)

# Receive timeout is this multiple of the connect timeout
_RECEIVE_TIMEOUT_FACTOR = 10


def functionality_level(value: Any) -> str:
    """Map an msDS-Behavior-Version value to its Windows Server release name."""
    if value is None:
        return ""
    value = str(value)
    return FUNCTIONALITY_LEVELS.get(value, value)


class DomainInfo:
    """
    Metadata about the domain, read from the rootDSE on demand.

    Attributes:
        metadata: rootDSE entries as returned by the server
        domain_functionality_level: Domain functional level
        forest_functionality_level: Forest functional level
        domain_controller_functionality_level: Functional level of the server
        server_dns_name: DNS host name of the server
    """

    def __init__(self) -> None:
        self.metadata: List[LDAPEntry] = []
        self.domain_functionality_level: str = ""
        self.forest_functionality_level: str = ""
        self.domain_controller_functionality_level: str = ""
        self.server_dns_name: str = ""

    def __repr__(self) -> str:
        return f"<DomainInfo ({self.to_dict()!r})>"

    @property
    def populated(self) -> bool:
        return len(self.metadata) > 0

    def to_dict(self) -> dict:
        return {
            "Domain Functional Level": self.domain_functionality_level,
            "Forest Functional Level": self.forest_functionality_level,
            "Domain Controller Functional Level": self.domain_controller_functionality_level,
            "Server DNS Name": self.server_dns_name,
        }


class SearchResults(NamedTuple):
    entries: List[LDAPEntry]
    referrals: List[str]
    controls: List[Control]


class LDAPSession:
    """
    An established directory session.

    Attributes:
        connection: Live ldap3 connection
        page_size: Page size used by search(), 0 disables paging
        base_dn: Default naming context, empty until resolved
        domain_info: Domain metadata, populated by get_domain_info()
        log: Logging handle of this session
        channels: Result channel set the next search streams into
        context: Cancellation context of the current channel set
        target: Server the session is connected to (host:port)
    """

    def __init__(
        self,
        connection: Any = None,
        page_size: int = 0,
        logger: Any = None,
        target: Optional[str] = None,
    ) -> None:
        self.connection = connection
        self.page_size = page_size
        self.base_dn = ""
        self.domain_info = DomainInfo()
        self.log = get_session_logger(logger)
        self.channels: Optional[ResultChannels] = None
        self.context: Optional[Context] = None
        self.target = target

        self._base_dn_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<LDAPSession target={self.target!r} base_dn={self.base_dn!r}>"

    def __enter__(self) -> "LDAPSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # =========================================================================
    # Authentication
    # =========================================================================

    def bind(
        self,
        username: str = "",
        password: str = "",
        hashes: str = "",
        use_ntlm: bool = False,
    ) -> auth.BindSpec:
        """
        Bind with the mechanism selected from the credentials.

        A hash forces NTLM pass-the-hash, the NTLM flag forces NTLM, otherwise
        a simple bind is made, anonymous when there is no username.

        Returns:
            The bind specification that was used

        Raises:
            AuthenticationError: If the bind fails
        """
        spec = auth.resolve_bind_spec(username, password, hashes, use_ntlm)
        auth.bind(self._require_connection(), spec, target=self.target, log=self.log)
        return spec

    def simple_bind(self, username: str = "", password: str = "") -> auth.BindSpec:
        """Simple bind, or anonymous bind when username is empty."""
        return self.bind(username, password)

    def ntlm_bind(
        self, username: str, password: str = "", hashes: str = ""
    ) -> auth.BindSpec:
        """NTLM bind with a password, or with a hash when one is given."""
        return self.bind(username, password, hashes, use_ntlm=True)

    # =========================================================================
    # Naming context and domain metadata
    # =========================================================================

    def resolve_base_context(self) -> str:
        """
        Return the default naming context, searching the rootDSE only once.

        Raises:
            DirectoryError: If the server returns no entry or no defaultNamingContext
        """
        with self._base_dn_lock:
            if self.base_dn:
                return self.base_dn

            entries = self._search_root_dse([DEFAULT_NAMING_CONTEXT])
            if len(entries) == 0:
                raise DirectoryError(
                    "error getting metadata: no LDAP responses from server",
                    step="base_dn",
                    target=self.target,
                )

            default_naming_context = entries[0].get_first(DEFAULT_NAMING_CONTEXT)
            if not default_naming_context:
                raise DirectoryError(
                    f"error getting metadata: attribute {DEFAULT_NAMING_CONTEXT} missing",
                    step="base_dn",
                    target=self.target,
                )

            self.base_dn = str(default_naming_context)
            return self.base_dn

    # Name used by older callers
    get_default_naming_context = resolve_base_context

    def get_domain_info(self, refresh: bool = False) -> DomainInfo:
        """
        Read the domain metadata from the rootDSE, once unless refresh is set.

        Raises:
            DirectoryError: If the server returns no rootDSE entry
        """
        if self.domain_info.populated and not refresh:
            return self.domain_info

        entries = self._search_root_dse(ldap3.ALL_ATTRIBUTES)
        if len(entries) == 0:
            raise DirectoryError(
                "error getting metadata: no LDAP responses from server",
                step="domain_info",
                target=self.target,
            )

        root = entries[0]
        info = DomainInfo()
        info.metadata = entries
        info.domain_functionality_level = functionality_level(
            root.get_first(DOMAIN_FUNCTIONALITY)
        )
        info.forest_functionality_level = functionality_level(
            root.get_first(FOREST_FUNCTIONALITY)
        )
        info.domain_controller_functionality_level = functionality_level(
            root.get_first(DOMAIN_CONTROLLER_FUNCTIONALITY)
        )
        info.server_dns_name = str(root.get_first(DNS_HOST_NAME, ""))

        self.domain_info = info
        return info

    def _search_root_dse(self, attributes: Union[str, List[str]]) -> List[LDAPEntry]:
        connection = self._require_connection()

        try:
            connection.search(
                search_base="",
                search_filter="(objectClass=*)",
                search_scope=ldap3.BASE,
                dereference_aliases=ldap3.DEREF_NEVER,
                attributes=attributes,
            )
        except LDAPException as e:
            raise DirectoryError(
                f"rootDSE search failed: {e}", step="root_dse", target=self.target
            ) from e

        result = connection.result or {}
        if result.get("result") != RESULT_SUCCESS:
            raise DirectoryError(
                f"rootDSE search failed: {describe_ldap_result(result)}",
                step="root_dse",
                target=self.target,
                result=result,
            )

        return [
            LDAPEntry(**item)
            for item in connection.response or []
            if item.get("type") == "searchResEntry"
        ]

    # =========================================================================
    # Result channels
    # =========================================================================

    def attach_channels(
        self, context: Optional[Context] = None, keep_open: bool = False
    ) -> ResultChannels:
        """
        Attach a fresh result channel set bound to context.

        The previous set must be closed. An unused set that would close itself
        is closed here; any other open set is refused.

        Args:
            context: Cancellation context, a new one if omitted
            keep_open: Keep the set open across operations; the caller closes it

        Raises:
            ChannelLifecycleError: If the previous set is still open and in use
        """
        self._release_channels()

        if context is None:
            context = Context()

        self.log.debug("Creating new result channels")
        self.channels = ResultChannels(context, keep_open=keep_open)
        self.context = context
        return self.channels

    def set_channels(self, channels: ResultChannels, context: Context) -> None:
        """Attach a channel set built by the caller."""
        if channels is not self.channels:
            self._release_channels()
        self.channels = channels
        self.context = context

    def _release_channels(self) -> None:
        previous = self.channels
        if previous is None or previous.closed:
            return

        if previous.active:
            raise ChannelLifecycleError(
                "cannot replace channels while an operation is streaming into them",
                target=self.target,
            )
        if previous.keep_open or previous.used:
            raise ChannelLifecycleError(
                "previous channels are still open, close them first",
                target=self.target,
            )

        previous.close()

    def mark_keep_open(self) -> None:
        """
        Make the current channel set stay open after each operation.

        Must be called before the set is used; prefer
        attach_channels(context, keep_open=True). The caller then closes the
        set with close_channels() once no search can still be sending.

        Raises:
            ChannelLifecycleError: If there is no set, or it was already used or closed
        """
        self._require_channels().mark_keep_open()

    def close_channels(self) -> None:
        """
        Close the current channel set.

        Raises:
            ChannelLifecycleError: If there is no set or it is already closed
        """
        self._require_channels().close()
        self.log.debug("Closed result channels")

    def _require_channels(self) -> ResultChannels:
        if self.channels is None:
            raise ChannelLifecycleError("no result channels attached", target=self.target)
        return self.channels

    def _require_connection(self) -> Any:
        if self.connection is None:
            raise SessionError("session is not connected", target=self.target)
        return self.connection

    # =========================================================================
    # Searching
    # =========================================================================

    def search(
        self,
        search_filter: str = "(objectClass=*)",
        attributes: Union[str, List[str]] = ldap3.ALL_ATTRIBUTES,
        search_base: Optional[str] = None,
        search_scope: str = ldap3.SUBTREE,
        size_limit: int = 0,
        time_limit: int = 0,
        controls: Optional[List[Any]] = None,
    ) -> int:
        """
        Stream the results of a search into the attached channel set.

        Entries, referral URIs and response controls are sent as each page
        arrives. Sends block until a consumer receives, so consumers of all three
        channels must be running. Unless the set is keep-open, it is closed when
        the search ends, successfully or not.

        Args:
            search_filter: LDAP filter
            attributes: Attributes to return
            search_base: Base DN, the default naming context if omitted
            search_scope: ldap3 scope constant
            size_limit: Maximum number of entries, 0 for the server limit
            time_limit: Maximum seconds, 0 for the server limit
            controls: Extra request controls

        Returns:
            Number of entries streamed

        Raises:
            ChannelLifecycleError: If no usable channel set is attached
            DirectoryError: If the search fails
            OperationCancelledError: If the context is cancelled mid-search
        """
        channels = self._require_channels()

        if search_base is None:
            search_base = self.base_dn

        channels.begin()
        try:
            connection = self._require_connection()
            return self._stream_search(
                connection,
                channels,
                search_filter,
                attributes,
                search_base,
                search_scope,
                size_limit,
                time_limit,
                controls,
            )
        except OperationCancelledError:
            self.log.debug(f"Search {search_filter!r} cancelled")
            raise
        finally:
            channels.finish()

    def _stream_search(
        self,
        connection: Any,
        channels: ResultChannels,
        search_filter: str,
        attributes: Union[str, List[str]],
        search_base: str,
        search_scope: str,
        size_limit: int,
        time_limit: int,
        controls: Optional[List[Any]],
    ) -> int:
        count = 0
        cookie: Optional[bytes] = None

        while True:
            if channels.context.cancelled:
                raise OperationCancelledError(
                    f"search {search_filter!r} cancelled", step="search", target=self.target
                )

            paging = {}
            if self.page_size > 0:
                paging = {"paged_size": self.page_size, "paged_cookie": cookie}

            try:
                connection.search(
                    search_base=search_base,
                    search_filter=search_filter,
                    search_scope=search_scope,
                    dereference_aliases=ldap3.DEREF_NEVER,
                    attributes=attributes,
                    size_limit=size_limit,
                    time_limit=time_limit,
                    controls=controls,
                    **paging,
                )
            except LDAPException as e:
                raise DirectoryError(
                    f"search {search_filter!r} failed: {e}",
                    step="search",
                    target=self.target,
                ) from e

            result = connection.result or {}
            code = result.get("result")
            if code not in _USABLE_RESULTS:
                raise DirectoryError(
                    f"search {search_filter!r} failed: {describe_ldap_result(result)}",
                    step="search",
                    target=self.target,
                    result=result,
                )

            for item in connection.response or []:
                if item.get("type") == "searchResEntry":
                    channels.entries.send(LDAPEntry(**item))
                    count += 1
                elif item.get("type") == "searchResRef":
                    for uri in item.get("uri") or []:
                        channels.referrals.send(uri)

            for uri in result.get("referrals") or []:
                channels.referrals.send(uri)

            response_controls = result.get("controls") or {}
            for oid, control in response_controls.items():
                channels.controls.send(
                    Control(
                        oid,
                        bool(control.get("criticality")),
                        control.get("value"),
                        control.get("description") or "",
                    )
                )

            if code == RESULT_SIZE_LIMIT_EXCEEDED:
                self.log.warning(
                    f"Size limit exceeded for {search_filter!r}, results are incomplete"
                )
                break

            if self.page_size <= 0:
                break

            paged = response_controls.get(PAGED_RESULTS_OID) or {}
            cookie = (paged.get("value") or {}).get("cookie")
            if not cookie:
                break

        self.log.debug(f"Search {search_filter!r} returned {count} entries")
        return count

    def search_all(
        self,
        search_filter: str = "(objectClass=*)",
        attributes: Union[str, List[str]] = ldap3.ALL_ATTRIBUTES,
        search_base: Optional[str] = None,
        **kwargs: Any,
    ) -> SearchResults:
        """
        Run a search and collect everything it streams.

        Attaches a fresh channel set and drains each channel on its own thread.

        Returns:
            Entries, referrals and controls in server order
        """
        context = Context()
        channels = self.attach_channels(context)
        return self._collect(
            channels,
            lambda: self.search(search_filter, attributes, search_base, **kwargs),
        )

    def stream_metadata(self) -> int:
        """
        Stream the rootDSE metadata entries into the attached channel set.

        Returns:
            Number of entries streamed
        """
        channels = self._require_channels()

        channels.begin()
        try:
            info = self.get_domain_info()
            for entry in info.metadata:
                channels.entries.send(entry)
        finally:
            channels.finish()

        return len(info.metadata)

    def _collect(
        self, channels: ResultChannels, producer: Callable[[], Any]
    ) -> SearchResults:
        results = SearchResults([], [], [])
        sinks = [results.entries, results.referrals, results.controls]

        def consume(channel: Any, sink: List[Any]) -> None:
            for item in channel:
                sink.append(item)

        threads = [
            threading.Thread(
                target=consume,
                args=(channel, sink),
                daemon=True,
                name=f"ldapsession-{channel.name}",
            )
            for channel, sink in zip(channels.channels, sinks)
        ]
        for thread in threads:
            thread.start()

        try:
            producer()
        except BaseException:
            channels.context.cancel()
            # Consumers only return once the set is closed
            if not channels.closed:
                channels.close()
            raise
        finally:
            for thread in threads:
                thread.join()

        return results

    # =========================================================================
    # Teardown
    # =========================================================================

    def close(self) -> None:
        """Unbind and close the connection. Safe to call more than once."""
        connection = self.connection
        if connection is None:
            return

        self.connection = None
        try:
            connection.unbind()
        except (LDAPException, OSError) as e:
            self.log.debug(f"Error while closing connection: {e}")
        self.log.debug("Closed LDAP connection")


def establish_session(
    options: SessionOptions,
    context: Optional[Context] = None,
    resolver: Optional[DnsResolver] = None,
    dialer: Optional[Dialer] = None,
    upgrader: Callable[..., Any] = upgrade,
    connection_factory: Callable[..., Any] = open_connection,
) -> LDAPSession:
    """
    Establish an authenticated session.

    Args:
        options: Session options
        context: Cancellation context for the initial channel set
        resolver: DNS resolver for discovery, built from options if omitted
        dialer: Transport dialer, built from options if omitted
        upgrader: TLS upgrade function
        connection_factory: Starts the LDAP session over a stream

    Returns:
        A bound session with its base DN resolved and fresh channels attached

    Raises:
        SessionError: The first failing step's error. The partially built
            session, with its connection closed, is available as ``e.session``
    """
    session = LDAPSession(page_size=options.page_size, logger=options.logger)

    try:
        _establish(
            session,
            options,
            context if context is not None else Context(),
            resolver,
            dialer,
            upgrader,
            connection_factory,
        )
    except SessionError as e:
        e.session = session
        session.close()
        raise
    except Exception:
        session.close()
        raise

    return session


def _establish(
    session: LDAPSession,
    options: SessionOptions,
    context: Context,
    resolver: Optional[DnsResolver],
    dialer: Optional[Dialer],
    upgrader: Callable[..., Any],
    connection_factory: Callable[..., Any],
) -> None:
    log = session.log

    if resolver is None:
        resolver = DnsResolver.create(options.nameserver, options.dns_tcp)

    # 1. Server
    port = resolve_port(options.port, options.secure)
    dc = options.domain_controller
    if not dc:
        servers = resolver.find_ldap_servers(options.domain)
        dc = servers[0]
        log.info(f"Found LDAP server via DNS: {dc}")

    session.target = f"{dc}:{port}"
    scheme = "ldaps" if options.secure else "ldap"
    url = f"{scheme}://{dc}:{port}"

    # With a custom nameserver the system resolver may not know the server
    address = dc
    if options.nameserver and not options.proxy:
        address = resolver.resolve(dc)

    # 2. Transport and TLS
    if dialer is None:
        dialer = Dialer(options.proxy, options.timeout, log=log)
    stream = dialer.dial(address, port)
    stream = upgrader(
        stream,
        options.secure,
        dc,
        TlsPolicy(options.verify_certificate, options.ca_file),
        log=log,
    )

    # 3. LDAP session over the stream
    try:
        session.connection = connection_factory(
            stream,
            dc,
            port,
            options.secure,
            options.timeout * _RECEIVE_TIMEOUT_FACTOR,
        )
    except Exception as e:
        stream.close()
        raise TransportError(
            f"failed to start LDAP session: {e}", step="start", target=session.target
        ) from e
    session.page_size = options.page_size

    # 4. Bind
    session.bind(options.username, options.password, options.hashes, options.use_ntlm)
    log.info(f"Successful bind to {url!r} as {options.username!r}")

    # 5. Base DN
    session.resolve_base_context()
    log.info(f"Retrieved default naming context: {session.base_dn!r}")

    # 6. Channels
    session.attach_channels(context)
