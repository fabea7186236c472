"""
Error types and error reporting utilities for ldapsession.

Every failure raised while establishing or using a session derives from
SessionError and records which step failed and against which target, so that a
single log line is enough to act on it.

Functions:
    translate_error_code: Convert a Windows error code to a readable message
    describe_ldap_result: Render an LDAP result, decoding AD diagnostics
    handle_error: Print a stack trace or a hint, depending on verbosity
"""

import re
import traceback
from typing import Any, Dict, Optional, Tuple

from impacket import hresult_errors

from ldapsession.lib.constants import (
    AD_BIND_ERRORS,
    AD_CHANNEL_BINDING_REQUIRED,
    AD_SIGNING_REQUIRED,
)
from ldapsession.lib.logger import is_verbose, logging

_AD_DATA_CODE = re.compile(r"\bdata ([0-9a-fA-F]+)\b")


class SessionError(Exception):
    """
    Base class for all ldapsession failures.

    Attributes:
        step: Name of the establishment or operation step that failed
        target: Server (host:port) the step was working against, if known
        session: Partially constructed session, set by establish_session
    """

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        target: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.step = step
        self.target = target
        self.session: Optional[Any] = None

    def __str__(self) -> str:
        context = []
        if self.step:
            context.append(f"step={self.step}")
        if self.target:
            context.append(f"target={self.target}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class DiscoveryError(SessionError):
    """No candidate directory server could be found for the domain."""


class TransportError(SessionError, ConnectionError):
    """The byte stream to the server could not be established."""


class ProxyError(TransportError):
    """Negotiation with the SOCKS5 proxy itself failed."""


class DialError(TransportError):
    """The TCP dial to the server failed, directly or through the proxy tunnel."""

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        target: Optional[str] = None,
        via_proxy: bool = False,
    ) -> None:
        super().__init__(message, step=step, target=target)
        self.via_proxy = via_proxy


class TLSHandshakeError(TransportError):
    """The TLS client handshake did not complete."""


class AuthenticationError(SessionError):
    """
    The bind was rejected or the mechanism failed.

    Attributes:
        result: Raw LDAP result reported by the server, if one was received
    """

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        target: Optional[str] = None,
        result: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, step=step, target=target)
        self.result = result


class DirectoryError(SessionError):
    """A directory operation returned no usable result."""

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        target: Optional[str] = None,
        result: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, step=step, target=target)
        self.result = result


class ChannelLifecycleError(SessionError):
    """A result channel set was used against its lifecycle rules."""


class ChannelClosedError(ChannelLifecycleError):
    """Receive or send attempted on a closed channel."""


class OperationCancelledError(SessionError):
    """The streaming operation was abandoned because its context was cancelled."""


def translate_error_code(error_code: int) -> str:
    """
    Translate a Windows API error code to a human-readable string.

    Args:
        error_code: Windows API error code (HRESULT)

    Returns:
        Formatted error message with code, short description, and detailed explanation

    Example:
        >>> translate_error_code(0x80090308)
        'code: 0x80090308 - SEC_E_INVALID_TOKEN - The token supplied to the function is invalid'
    """
    masked_code = error_code & 0xFFFFFFFF

    if masked_code in hresult_errors.ERROR_MESSAGES:
        error_tuple: Tuple[str, str] = hresult_errors.ERROR_MESSAGES[masked_code]
        error_short, error_detail = error_tuple
        return f"code: 0x{masked_code:x} - {error_short} - {error_detail}"
    else:
        return f"unknown error code: 0x{masked_code:x}"


def describe_ad_message(message: str) -> Optional[str]:
    """
    Decode the diagnostic message Active Directory attaches to LDAP errors.

    Messages look like
    ``80090308: LdapErr: DSID-0C090447, comment: AcceptSecurityContext error, data 52e, v3839``.

    Args:
        message: Diagnostic message from the LDAP result

    Returns:
        Human-readable explanation, or None if the message is not in AD format
    """
    if not message:
        return None

    prefix = message.split(":")[0].strip()

    if prefix == AD_CHANNEL_BINDING_REQUIRED:
        return "channel binding policy was not satisfied, try a plaintext connection or simple bind"
    if prefix == AD_SIGNING_REQUIRED:
        return "LDAP signing is required, try '-secure' to use TLS encryption"

    details = []
    if re.fullmatch(r"[0-9a-fA-F]{8}", prefix):
        details.append(translate_error_code(int(prefix, 16)))

    match = _AD_DATA_CODE.search(message)
    if match:
        sub_code = match.group(1).lower()
        if sub_code in AD_BIND_ERRORS:
            details.append(AD_BIND_ERRORS[sub_code])

    if not details:
        return None

    return "; ".join(details)


def describe_ldap_result(result: Optional[Dict[str, Any]]) -> str:
    """
    Render an LDAP result dictionary for error messages.

    Args:
        result: Result dictionary as stored on an ldap3 connection

    Returns:
        One-line description including the decoded AD diagnostic, if any
    """
    if not result:
        return "no result from server"

    description = f"{result.get('description', 'unknown')} ({result.get('result')})"

    # AD terminates its diagnostic messages with a NUL
    message = (result.get("message") or "").strip().rstrip("\x00")
    if message:
        description += f": {message}"

    hint = describe_ad_message(message)
    if hint:
        description += f" [{hint}]"

    return description


def handle_error(is_warning: bool = False) -> None:
    """
    Report the exception currently being handled.

    Prints the full traceback when verbose output is enabled, otherwise a hint
    explaining how to get one.
    """
    if is_verbose():
        traceback.print_exc()
    else:
        msg = "Use -debug to print a stacktrace"
        if is_warning:
            logging.warning(msg)
        else:
            logging.error(msg)
