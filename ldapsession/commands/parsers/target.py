"""
Connection and authentication options shared by all commands.
"""

import argparse


def add_argument_group(parser: argparse.ArgumentParser) -> None:
    """
    Add server, transport, and authentication arguments to a parser.

    Args:
        parser: The parser to add argument groups to
    """
    conn_group = parser.add_argument_group("connection options")

    _ = conn_group.add_argument(
        "-d",
        "-domain",
        dest="domain",
        action="store",
        metavar="domain",
        help=(
            "Domain to connect to. Used to find a domain controller via DNS. "
            "If omitted, the domain part of the username is used"
        ),
    )
    _ = conn_group.add_argument(
        "-dc",
        action="store",
        metavar="hostname",
        help="Domain controller to connect to. Skips DNS discovery",
    )
    _ = conn_group.add_argument(
        "-port",
        action="store",
        metavar="port",
        type=int,
        default=0,
        help="LDAP port (default: 636 with -secure, 389 otherwise)",
    )
    _ = conn_group.add_argument(
        "-secure",
        action="store_true",
        help="Use LDAPS (TLS) instead of plaintext LDAP",
    )
    _ = conn_group.add_argument(
        "-insecure",
        action="store_true",
        help="Do not verify the server certificate when using -secure",
    )
    _ = conn_group.add_argument(
        "-ca-file",
        action="store",
        metavar="path",
        help="CA bundle used to verify the server certificate",
    )
    _ = conn_group.add_argument(
        "-proxy",
        action="store",
        metavar="host:port",
        help="SOCKS5 proxy to connect through (socks5://[user:pass@]host:port)",
    )
    _ = conn_group.add_argument(
        "-ns",
        action="store",
        metavar="ip address",
        help="Nameserver for DNS resolution",
    )
    _ = conn_group.add_argument(
        "-dns-tcp", action="store_true", help="Use TCP instead of UDP for DNS queries"
    )
    _ = conn_group.add_argument(
        "-timeout",
        action="store",
        metavar="seconds",
        help="Timeout for connections in seconds (default: 10)",
        default=10,
        type=int,
    )

    auth_group = parser.add_argument_group("authentication options")

    _ = auth_group.add_argument(
        "-u",
        "-username",
        metavar="username@domain",
        dest="username",
        action="store",
        help="Username to authenticate with. Anonymous bind if omitted",
    )
    _ = auth_group.add_argument(
        "-p",
        "-password",
        metavar="password",
        dest="password",
        action="store",
        help="Password for authentication",
    )
    _ = auth_group.add_argument(
        "-hashes",
        action="store",
        metavar="[lmhash:]nthash",
        help="NTLM hash, implies NTLM authentication (pass-the-hash)",
    )
    _ = auth_group.add_argument(
        "-ntlm",
        action="store_true",
        dest="use_ntlm",
        help="Use NTLM authentication instead of a simple bind",
    )
    _ = auth_group.add_argument(
        "-no-pass",
        action="store_true",
        help="Don't ask for password",
    )
