"""
Domain controller discovery over DNS.

Candidate servers are taken from the ``_ldap._tcp.dc._msdcs.<domain>`` SRV
records, ordered by priority then weight.
"""

import socket
from typing import Dict, List, Optional

import dns.exception
from dns.resolver import Resolver

from ldapsession.lib.constants import LDAP_SRV_TEMPLATE
from ldapsession.lib.errors import DiscoveryError
from ldapsession.lib.logger import logging


class DnsResolver:
    """
    DNS resolver for domain controller discovery and host name resolution.
    """

    def __init__(self) -> None:
        self.resolver: Resolver = Resolver()
        self.use_tcp: bool = False
        self.mappings: Dict[str, str] = {}

    @staticmethod
    def create(nameserver: Optional[str] = None, dns_tcp: bool = False) -> "DnsResolver":
        """
        Create a DnsResolver with the specified parameters.

        Args:
            nameserver: Nameserver to query instead of the system ones
            dns_tcp: Whether to use TCP for DNS queries

        Returns:
            DnsResolver: A configured DNS resolver
        """
        resolver = DnsResolver()

        # A single nameserver only; the resolver fails if any configured one fails
        if nameserver is not None:
            resolver.resolver.nameservers = [nameserver]

        resolver.use_tcp = dns_tcp

        return resolver

    def find_ldap_servers(self, domain: str) -> List[str]:
        """
        Look up the domain controllers advertised for a domain.

        Args:
            domain: DNS name of the domain

        Returns:
            Host names of the candidate servers, best first

        Raises:
            DiscoveryError: If the lookup fails or returns no records
        """
        if not domain:
            raise DiscoveryError(
                "no domain given and no domain controller specified", step="discovery"
            )

        record = LDAP_SRV_TEMPLATE.format(domain=domain)
        logging.debug(f"Looking up SRV record {record!r}")

        try:
            answers = self.resolver.resolve(record, "SRV", tcp=self.use_tcp)
        except dns.exception.DNSException as e:
            raise DiscoveryError(
                f"failed to find LDAP servers for {domain!r}: {e}",
                step="discovery",
                target=record,
            ) from e

        records = sorted(answers, key=lambda srv: (srv.priority, -srv.weight))
        servers = [str(srv.target).rstrip(".") for srv in records]
        servers = [server for server in servers if server]

        if not servers:
            raise DiscoveryError(
                f"no LDAP servers found for {domain!r}",
                step="discovery",
                target=record,
            )

        return servers

    def resolve(self, hostname: str) -> str:
        """
        Resolve hostname to IP address using DNS or local resolution.
        Uses cache for previously resolved hostnames.

        Returns:
            The resolved IP address or the original hostname if resolution fails
        """
        if hostname in self.mappings:
            logging.debug(
                f"Resolved {hostname!r} from cache: {self.mappings[hostname]}"
            )
            return self.mappings[hostname]

        if is_ip(hostname):
            return hostname

        ip_addr = None
        try:
            answers = self.resolver.resolve(hostname, tcp=self.use_tcp)
            if answers:
                ip_addr = str(answers[0])
        except dns.exception.DNSException as e:
            logging.debug(f"DNS resolution of {hostname!r} failed: {e}")

        # Fall back to socket resolution
        if ip_addr is None:
            try:
                ip_addr = socket.gethostbyname(hostname)
            except OSError:
                ip_addr = None

        if ip_addr is None:
            logging.warning(f"Failed to resolve: {hostname}")
            return hostname

        self.mappings[hostname] = ip_addr
        return ip_addr


def is_ip(hostname: Optional[str]) -> bool:
    """Check if the given hostname is an IPv4 address."""
    if hostname is None:
        return False

    try:
        _ = socket.inet_aton(hostname)
        return True
    except OSError:
        return False
