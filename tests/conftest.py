from typing import Any, Dict, List, Optional

import pytest
from ldap3.core.results import RESULT_INVALID_CREDENTIALS, RESULT_SUCCESS

from ldapsession.lib.constants import PAGED_RESULTS_OID
from ldapsession.lib.options import SessionOptions

BASE_DN = "DC=example,DC=com"


def success(**extra: Any) -> Dict[str, Any]:
    result = {"result": RESULT_SUCCESS, "description": "success", "message": "", "type": "searchResDone"}
    result.update(extra)
    return result


def entry(dn: str, **attributes: Any) -> Dict[str, Any]:
    return {
        "type": "searchResEntry",
        "dn": dn,
        "attributes": attributes,
        "raw_attributes": {
            key: [str(v).encode() for v in (value if isinstance(value, list) else [value])]
            for key, value in attributes.items()
        },
    }


def paged_control(cookie: bytes) -> Dict[str, Any]:
    return {
        PAGED_RESULTS_OID: {
            "description": "LDAP Simple Paged Results",
            "criticality": False,
            "value": {"size": 0, "cookie": cookie},
        }
    }


class FakeConnection:
    """
    Stand-in for an ldap3 connection.

    Search replies are queued per base DN: rootDSE searches (empty base) are
    served from root_replies, everything else from search_replies.
    """

    def __init__(
        self,
        root_replies: Optional[List[Any]] = None,
        search_replies: Optional[List[Any]] = None,
        bind_ok: bool = True,
        bind_result: Optional[Dict[str, Any]] = None,
    ) -> None:
        if root_replies is None:
            root_replies = [([entry("", defaultNamingContext=[BASE_DN])], success())]
        self.root_replies = list(root_replies)
        self.search_replies = list(search_replies or [])
        self.bind_ok = bind_ok
        self.bind_result = bind_result or {
            "result": RESULT_INVALID_CREDENTIALS,
            "description": "invalidCredentials",
            "message": "80090308: LdapErr: DSID-0C090447, comment: AcceptSecurityContext error, data 52e, v3839",
            "type": "bindResponse",
        }

        self.authentication: Any = None
        self.user: Any = None
        self.password: Any = None
        self.result: Dict[str, Any] = {}
        self.response: List[Dict[str, Any]] = []

        self.binds: List[Dict[str, Any]] = []
        self.searches: List[Dict[str, Any]] = []
        self.unbound = False

    def bind(self, read_server_info: bool = True) -> bool:
        self.binds.append(
            {
                "authentication": self.authentication,
                "user": self.user,
                "password": self.password,
            }
        )
        if self.bind_ok:
            self.result = {"result": RESULT_SUCCESS, "description": "success", "message": ""}
            return True
        self.result = self.bind_result
        return False

    def search(self, search_base: str, search_filter: str, **kwargs: Any) -> bool:
        self.searches.append(dict(search_base=search_base, search_filter=search_filter, **kwargs))
        replies = self.root_replies if search_base == "" else self.search_replies
        if not replies:
            raise AssertionError(f"unexpected search on {search_base!r}")
        self.response, self.result = replies.pop(0)
        return len(self.response) > 0

    def unbind(self) -> bool:
        self.unbound = True
        return True


class FakeStream:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeDialer:
    def __init__(self) -> None:
        self.dials: List[Any] = []
        self.stream = FakeStream()

    def dial(self, host: str, port: int) -> FakeStream:
        self.dials.append((host, port))
        return self.stream


class FakeResolver:
    def __init__(self, servers: Optional[List[str]] = None) -> None:
        self.servers = servers if servers is not None else ["dc1.example.com", "dc2.example.com"]
        self.lookups: List[str] = []

    def find_ldap_servers(self, domain: str) -> List[str]:
        self.lookups.append(domain)
        return list(self.servers)

    def resolve(self, hostname: str) -> str:
        return hostname


def passthrough_upgrade(stream: Any, secure: bool, server_hostname: str, policy: Any = None, log: Any = None) -> Any:
    return stream


@pytest.fixture
def connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def dialer() -> FakeDialer:
    return FakeDialer()


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def options() -> SessionOptions:
    return SessionOptions(domain="example.com", username="alice@example.com", password="secret")
