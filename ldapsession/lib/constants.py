"""
Protocol constants used across ldapsession.
"""

from typing import Dict

# Well-known LDAP ports
LDAP_PORT = 389
LDAPS_PORT = 636

# Connect timeout applied by the dialer, in seconds
DEFAULT_TIMEOUT = 10

# DNS SRV record advertising the domain controllers of a domain
LDAP_SRV_TEMPLATE = "_ldap._tcp.dc._msdcs.{domain}"

# Simple paged results control (RFC 2696)
PAGED_RESULTS_OID = "1.2.840.113556.1.4.319"

# Empty LM hash, used when only the NT hash is supplied
EMPTY_LM_HASH = "aad3b435b51404eeaad3b435b51404ee"

# rootDSE attributes
DEFAULT_NAMING_CONTEXT = "defaultNamingContext"
DOMAIN_FUNCTIONALITY = "domainFunctionality"
FOREST_FUNCTIONALITY = "forestFunctionality"
DOMAIN_CONTROLLER_FUNCTIONALITY = "domainControllerFunctionality"
DNS_HOST_NAME = "dnsHostName"

# msDS-Behavior-Version values
FUNCTIONALITY_LEVELS: Dict[str, str] = {
    "0": "2000",
    "1": "2003 Interim",
    "2": "2003",
    "3": "2008",
    "4": "2008 R2",
    "5": "2012",
    "6": "2012 R2",
    "7": "2016",
    "10": "2025",
}

# Sub-codes found in the "data XXX" part of Active Directory bind errors
AD_BIND_ERRORS: Dict[str, str] = {
    "525": "user not found",
    "52e": "invalid credentials",
    "530": "not permitted to logon at this time",
    "531": "not permitted to logon at this workstation",
    "532": "password expired",
    "533": "account disabled",
    "568": "too many context IDs",
    "701": "account expired",
    "773": "user must reset password",
    "775": "account locked out",
}

# Prefixes of Active Directory error messages that need a specific hint
AD_CHANNEL_BINDING_REQUIRED = "80090346"
AD_SIGNING_REQUIRED = "00002028"
