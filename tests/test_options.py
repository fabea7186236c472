import argparse

import pytest

from ldapsession.commands.parsers import target
from ldapsession.lib.options import SessionOptions


def parse(*args):
    parser = argparse.ArgumentParser()
    target.add_argument_group(parser)
    _ = parser.add_argument("-page-size", type=int, default=0)
    return parser.parse_args(list(args))


def test_defaults():
    options = SessionOptions()

    assert options.port == 0
    assert options.page_size == 0
    assert options.secure is False
    assert options.verify_certificate is True
    assert options.logger is None


def test_options_are_immutable():
    options = SessionOptions(domain="example.com")

    with pytest.raises(AttributeError):
        options.domain = "other.com"


@pytest.mark.parametrize("kwargs", [{"page_size": -1}, {"port": 70000}, {"port": -1}])
def test_invalid_values(kwargs):
    with pytest.raises(ValueError):
        SessionOptions(**kwargs)


def test_repr_hides_secrets():
    options = SessionOptions(username="alice", password="hunter2", hashes="aa" * 16)

    assert "hunter2" not in repr(options)
    assert "aa" * 16 not in repr(options)


def test_from_command_line():
    namespace = parse(
        "-u", "alice@example.com",
        "-p", "secret",
        "-dc", "dc1.example.com",
        "-secure",
        "-insecure",
        "-proxy", "127.0.0.1:1080",
        "-ns", "10.0.0.1",
        "-dns-tcp",
        "-timeout", "3",
        "-page-size", "500",
    )

    options = SessionOptions.from_options(namespace)

    assert options.domain == "example.com"
    assert options.domain_controller == "dc1.example.com"
    assert options.username == "alice@example.com"
    assert options.password == "secret"
    assert options.secure is True
    assert options.verify_certificate is False
    assert options.proxy == "127.0.0.1:1080"
    assert options.nameserver == "10.0.0.1"
    assert options.dns_tcp is True
    assert options.timeout == 3
    assert options.page_size == 500


def test_explicit_domain_wins():
    options = SessionOptions.from_options(
        parse("-u", "alice@child.example.com", "-p", "x", "-d", "example.com")
    )

    assert options.domain == "example.com"


def test_hash_and_ntlm_flags():
    options = SessionOptions.from_options(
        parse("-u", "alice@example.com", "-hashes", ":31d6cfe0d16ae931b73c59d7e0c089c0", "-ntlm")
    )

    assert options.hashes == ":31d6cfe0d16ae931b73c59d7e0c089c0"
    assert options.use_ntlm is True
    assert options.password == ""


def test_prompts_for_password(monkeypatch):
    monkeypatch.setattr("getpass.getpass", lambda prompt: "prompted")

    options = SessionOptions.from_options(parse("-u", "alice@example.com"))

    assert options.password == "prompted"


def test_no_pass_skips_prompt(monkeypatch):
    def fail(prompt):
        raise AssertionError("prompted")

    monkeypatch.setattr("getpass.getpass", fail)

    options = SessionOptions.from_options(parse("-u", "alice@example.com", "-no-pass"))

    assert options.password == ""


def test_anonymous_never_prompts(monkeypatch):
    def fail(prompt):
        raise AssertionError("prompted")

    monkeypatch.setattr("getpass.getpass", fail)

    options = SessionOptions.from_options(parse("-d", "example.com"))

    assert options.username == ""
    assert options.domain == "example.com"
