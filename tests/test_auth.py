import ldap3
import pytest
from ldap3.core.exceptions import LDAPSocketReceiveError

from conftest import FakeConnection
from ldapsession.lib.auth import (
    BindMethod,
    BindSpec,
    bind,
    normalize_hash,
    resolve_bind_spec,
    split_ntlm_username,
)
from ldapsession.lib.constants import EMPTY_LM_HASH
from ldapsession.lib.errors import AuthenticationError

NT_HASH = "31d6cfe0d16ae931b73c59d7e0c089c0"


def test_hash_wins_over_password_and_flag():
    spec = resolve_bind_spec("alice@example.com", "secret", NT_HASH, use_ntlm=False)

    assert spec.method == BindMethod.NTLM_HASH
    assert spec.username == "alice"
    assert spec.domain == "example.com"
    assert spec.password == ""


def test_ntlm_flag_selects_ntlm_password():
    spec = resolve_bind_spec("alice@example.com", "secret", use_ntlm=True)

    assert spec.method == BindMethod.NTLM_PASSWORD
    assert (spec.username, spec.domain, spec.password) == ("alice", "example.com", "secret")


def test_username_selects_simple_bind():
    spec = resolve_bind_spec("CN=alice,DC=example,DC=com", "secret")

    assert spec.method == BindMethod.SIMPLE
    assert spec.username == "CN=alice,DC=example,DC=com"


def test_no_username_is_unauthenticated():
    assert resolve_bind_spec().method == BindMethod.UNAUTHENTICATED
    assert resolve_bind_spec("", "ignored").method == BindMethod.UNAUTHENTICATED


@pytest.mark.parametrize(
    "username,expected",
    [
        ("alice@example.com", ("alice", "example.com")),
        ("alice", ("alice", "")),
        ("alice@corp@example.com", ("alice", "corpexample.com")),
        ("@example.com", ("", "example.com")),
    ],
)
def test_split_ntlm_username(username, expected):
    assert split_ntlm_username(username) == expected


def test_normalize_hash():
    assert normalize_hash(NT_HASH) == f"{EMPTY_LM_HASH}:{NT_HASH}"
    assert normalize_hash(f":{NT_HASH.upper()}") == f"{EMPTY_LM_HASH}:{NT_HASH}"
    assert normalize_hash(f"{'A' * 32}:{NT_HASH}") == f"{'a' * 32}:{NT_HASH}"


@pytest.mark.parametrize("value", ["nothex", "abc", f"{NT_HASH}00", f"zz:{NT_HASH}"])
def test_normalize_hash_rejects_garbage(value):
    with pytest.raises(ValueError):
        normalize_hash(value)


def test_repr_hides_secrets():
    spec = BindSpec(BindMethod.SIMPLE, "alice", "hunter2", hashes=NT_HASH)

    assert "hunter2" not in repr(spec)
    assert NT_HASH not in repr(spec)


def test_bind_unauthenticated():
    connection = FakeConnection()

    bind(connection, resolve_bind_spec())

    assert connection.binds == [{"authentication": ldap3.ANONYMOUS, "user": None, "password": None}]


def test_bind_simple():
    connection = FakeConnection()

    bind(connection, resolve_bind_spec("alice@example.com", "secret"))

    assert connection.binds == [
        {"authentication": ldap3.SIMPLE, "user": "alice@example.com", "password": "secret"}
    ]


def test_bind_ntlm_password():
    connection = FakeConnection()

    bind(connection, resolve_bind_spec("alice@example.com", "secret", use_ntlm=True))

    assert connection.binds == [
        {"authentication": ldap3.NTLM, "user": "example.com\\alice", "password": "secret"}
    ]


def test_bind_ntlm_hash():
    connection = FakeConnection()

    bind(connection, resolve_bind_spec("alice@example.com", hashes=NT_HASH))

    assert connection.binds[0]["authentication"] == ldap3.NTLM
    assert connection.binds[0]["password"] == f"{EMPTY_LM_HASH}:{NT_HASH}"


def test_bind_ntlm_bare_username_warns(caplog):
    connection = FakeConnection()

    with caplog.at_level("WARNING", logger="ldapsession"):
        bind(connection, resolve_bind_spec("alice", "secret", use_ntlm=True))

    assert connection.binds[0]["user"] == "\\alice"
    assert "empty domain" in caplog.text


def test_bind_rejected():
    connection = FakeConnection(bind_ok=False)

    with pytest.raises(AuthenticationError) as exc_info:
        bind(connection, resolve_bind_spec("alice@example.com", "wrong"), target="dc1:389")

    error = exc_info.value
    assert error.step == "bind"
    assert error.target == "dc1:389"
    assert error.result is connection.bind_result
    assert "invalid credentials" in str(error)


def test_bind_bad_hash_never_reaches_server():
    connection = FakeConnection()

    with pytest.raises(AuthenticationError):
        bind(connection, resolve_bind_spec("alice@example.com", hashes="not-a-hash"))

    assert connection.binds == []


def test_bind_protocol_failure():
    class BrokenConnection(FakeConnection):
        def bind(self, read_server_info=True):
            raise LDAPSocketReceiveError("connection reset")

    with pytest.raises(AuthenticationError) as exc_info:
        bind(BrokenConnection(), resolve_bind_spec("alice@example.com", "secret"))

    assert "connection reset" in str(exc_info.value)
