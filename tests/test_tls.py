import socket
import ssl

import pytest

from ldapsession.lib.errors import TLSHandshakeError, TransportError
from ldapsession.lib.tls import TlsPolicy, upgrade


@pytest.fixture
def stream_pair():
    client, server = socket.socketpair()
    yield client, server
    client.close()
    server.close()


def test_plaintext_stream_is_returned_untouched(stream_pair):
    client, _ = stream_pair

    assert upgrade(client, False, "dc1.example.com") is client


def test_default_policy_verifies():
    context = TlsPolicy().create_context()

    assert context.check_hostname is True
    assert context.verify_mode == ssl.CERT_REQUIRED


def test_insecure_policy_accepts_any_certificate():
    context = TlsPolicy(verify=False).create_context()

    assert context.check_hostname is False
    assert context.verify_mode == ssl.CERT_NONE


def test_handshake_failure(stream_pair):
    client, server = stream_pair
    client.settimeout(5)
    server.close()

    with pytest.raises(TLSHandshakeError) as exc_info:
        upgrade(client, True, "dc1.example.com")

    error = exc_info.value
    assert isinstance(error, TransportError)
    assert error.step == "tls"
    assert error.target == "dc1.example.com"


def test_handshake_failure_with_garbage(stream_pair):
    client, server = stream_pair
    client.settimeout(5)
    server.sendall(b"this is not a TLS server\r\n" * 4)
    server.shutdown(socket.SHUT_WR)

    with pytest.raises(TLSHandshakeError):
        upgrade(client, True, "dc1.example.com", TlsPolicy(verify=False))


def test_insecure_upgrade_warns(stream_pair, caplog):
    client, server = stream_pair
    client.settimeout(5)
    server.close()

    with caplog.at_level("WARNING", logger="ldapsession"):
        with pytest.raises(TLSHandshakeError):
            upgrade(client, True, "dc1.example.com", TlsPolicy(verify=False))

    assert "verification disabled" in caplog.text
