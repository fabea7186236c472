"""
Bind strategies for an established LDAP connection.

Four mechanisms are supported and selected from the credentials:

- NTLM pass-the-hash: a hash is present (wins over everything else)
- NTLM with password: the NTLM flag is set
- Simple: a username is present
- Unauthenticated: no username

NTLM usernames are given as ``user@domain``. The domain part is everything
after the first ``@`` with any further ``@`` dropped; a bare username yields an
empty domain.
"""

import enum
import re
from typing import Any, NamedTuple, Optional, Tuple

import ldap3
from ldap3.core.exceptions import LDAPException

from ldapsession.lib.constants import EMPTY_LM_HASH
from ldapsession.lib.errors import AuthenticationError, describe_ldap_result
from ldapsession.lib.logger import logging

_HEX_HASH = re.compile(r"^[0-9a-fA-F]{32}$")


class BindMethod(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    SIMPLE = "simple"
    NTLM_PASSWORD = "ntlm"
    NTLM_HASH = "ntlm-hash"


class BindSpec(NamedTuple):
    """
    Resolved bind parameters.

    For NTLM methods, username holds the bare user and domain the part after
    the ``@``; for simple binds username is used verbatim.
    """

    method: BindMethod
    username: str = ""
    password: str = ""
    domain: str = ""
    hashes: str = ""

    def __repr__(self) -> str:
        # Never leak the secret into logs
        return (
            f"BindSpec(method={self.method.value!r}, username={self.username!r}, "
            f"domain={self.domain!r})"
        )


def split_ntlm_username(username: str) -> Tuple[str, str]:
    """
    Split ``user@domain`` into its user and domain parts.

    Only the first ``@`` separates the parts; the remaining pieces are joined
    without a separator. A username without ``@`` has an empty domain.

    Example:
        >>> split_ntlm_username("alice@corp.example.com")
        ('alice', 'corp.example.com')
        >>> split_ntlm_username("alice")
        ('alice', '')
    """
    parts = username.split("@")
    return parts[0], "".join(parts[1:])


def normalize_hash(value: str) -> str:
    """
    Turn ``nthash`` or ``lmhash:nthash`` into the ``LM:NT`` form ldap3 expects.

    Raises:
        ValueError: If the NT hash is not 32 hexadecimal characters
    """
    if ":" in value:
        lmhash, nthash = value.split(":", 1)
    else:
        lmhash, nthash = "", value

    if not _HEX_HASH.match(nthash):
        raise ValueError("NT hash must be 32 hexadecimal characters")

    if not lmhash:
        lmhash = EMPTY_LM_HASH
    elif not _HEX_HASH.match(lmhash):
        raise ValueError("LM hash must be 32 hexadecimal characters")

    return f"{lmhash.lower()}:{nthash.lower()}"


def resolve_bind_spec(
    username: str = "",
    password: str = "",
    hashes: str = "",
    use_ntlm: bool = False,
) -> BindSpec:
    """
    Choose the bind method for a set of credentials.

    Args:
        username: Username, ``user@domain`` for NTLM
        password: Password
        hashes: NT hash or ``LM:NT`` pair
        use_ntlm: Use NTLM even without a hash

    Returns:
        The resolved bind specification
    """
    username = username or ""
    password = password or ""

    if hashes:
        user, domain = split_ntlm_username(username)
        return BindSpec(BindMethod.NTLM_HASH, user, "", domain, hashes)

    if use_ntlm:
        user, domain = split_ntlm_username(username)
        return BindSpec(BindMethod.NTLM_PASSWORD, user, password, domain)

    if username:
        return BindSpec(BindMethod.SIMPLE, username, password)

    return BindSpec(BindMethod.UNAUTHENTICATED)


def _configure(connection: Any, spec: BindSpec, target: Optional[str] = None) -> None:
    """Load the credentials for spec onto the connection before binding."""
    if spec.method == BindMethod.UNAUTHENTICATED:
        connection.authentication = ldap3.ANONYMOUS
        connection.user = None
        connection.password = None
    elif spec.method == BindMethod.SIMPLE:
        connection.authentication = ldap3.SIMPLE
        connection.user = spec.username
        connection.password = spec.password
    else:
        connection.authentication = ldap3.NTLM
        connection.user = f"{spec.domain}\\{spec.username}"
        if spec.method == BindMethod.NTLM_HASH:
            try:
                connection.password = normalize_hash(spec.hashes)
            except ValueError as e:
                raise AuthenticationError(str(e), step="bind", target=target) from e
        else:
            connection.password = spec.password


def bind(
    connection: Any,
    spec: BindSpec,
    target: Optional[str] = None,
    log: Any = logging,
) -> None:
    """
    Authenticate an open connection.

    Args:
        connection: Open ldap3 connection
        spec: Bind parameters from resolve_bind_spec
        target: Server description used in error messages
        log: Logger receiving progress messages

    Raises:
        AuthenticationError: If the server rejects the bind or the mechanism fails
    """
    if spec.method == BindMethod.NTLM_HASH:
        log.info(f"Attempting PtH NTLM bind for {spec.username!r}")
    elif spec.method == BindMethod.NTLM_PASSWORD:
        log.info(f"Attempting NTLM bind for {spec.username!r}")
    else:
        log.debug(f"Attempting {spec.method.value} bind")

    if spec.method in (BindMethod.NTLM_HASH, BindMethod.NTLM_PASSWORD) and not spec.domain:
        log.warning(
            f"No domain in NTLM username {spec.username!r}, binding with an empty domain"
        )

    _configure(connection, spec, target)

    try:
        bound = connection.bind(read_server_info=False)
    except LDAPException as e:
        raise AuthenticationError(
            f"{spec.method.value} bind failed: {e}", step="bind", target=target
        ) from e

    if not bound:
        result = connection.result
        raise AuthenticationError(
            f"{spec.method.value} bind failed: {describe_ldap_result(result)}",
            step="bind",
            target=target,
            result=result,
        )
