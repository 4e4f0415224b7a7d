import pytest

from netsink.config import ConfigError, ServerConfig, build_config, load_config


def test_defaults():
    config = load_config([], environ={})

    assert config == ServerConfig()
    assert config.tcp_address == ("0.0.0.0", 8080)
    assert not config.http_mode
    assert not config.tls_enabled
    assert not config.auth_enabled
    assert not config.debug
    assert config.log_file == ""


def test_flags():
    config = load_config(
        [
            "-i", "127.0.0.1",
            "-p", "9000",
            "--serve", "8443",
            "--tls-cert", "cert.pem",
            "--tls-key", "key.pem",
            "--auth-user", "alice",
            "--auth-pass", "s3cret",
            "--log-file", "netsink.log",
            "--log-level", "DEBUG",
        ],
        environ={},
    )

    assert config.tcp_address == ("127.0.0.1", 9000)
    assert config.serve == 8443
    assert config.http_mode
    assert config.tls_enabled
    assert config.auth_enabled
    assert config.log_file == "netsink.log"
    assert config.log_level == "debug"
    assert config.debug


@pytest.mark.parametrize(
    "user, password, enabled",
    [
        ("alice", "s3cret", True),
        ("alice", "", False),
        ("", "s3cret", False),
        ("", "", False),
    ],
)
def test_auth_needs_both_credentials(user, password, enabled):
    assert ServerConfig(auth_user=user, auth_pass=password).auth_enabled is enabled


def test_tls_needs_both_paths():
    assert not ServerConfig(tls_cert="cert.pem").tls_enabled
    assert not ServerConfig(tls_key="key.pem").tls_enabled
    assert ServerConfig(tls_cert="cert.pem", tls_key="key.pem").tls_enabled


def test_environment_overrides_file_and_flags_override_environment(tmp_path):
    ini = tmp_path / "netsink.ini"
    ini.write_text("[netsink]\nport = 7000\ninterface = 10.0.0.1\nlog_level = error\n")
    environ = {"NETSINK_PORT": "7100", "NETSINK_CONFIG": str(ini)}

    config = load_config([], environ=environ)
    assert config.port == 7100
    assert config.interface == "10.0.0.1"
    assert config.log_level == "error"

    config = load_config(["--port", "7200"], environ=environ)
    assert config.port == 7200


def test_config_file_flag(tmp_path):
    ini = tmp_path / "netsink.ini"
    ini.write_text("[netsink]\nserve = 8000\nauth-user = bob\n")

    config = load_config(["--config", str(ini)], environ={})

    assert config.serve == 8000
    assert config.auth_user == "bob"
    assert not config.auth_enabled


def test_config_file_values_are_literal(tmp_path):
    ini = tmp_path / "netsink.ini"
    ini.write_text("[netsink]\nauth_user = bob\nauth_pass = 100%secure\nlog_file = %(here)s.log\n")

    config = load_config(["--config", str(ini)], environ={})

    assert config.auth_pass == "100%secure"
    assert config.log_file == "%(here)s.log"
    assert config.auth_enabled


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(["--config", str(tmp_path / "nope.ini")], environ={})


def test_unknown_config_file_option(tmp_path):
    ini = tmp_path / "netsink.ini"
    ini.write_text("[netsink]\ncolour = blue\n")

    with pytest.raises(ConfigError, match="colour"):
        load_config(["--config", str(ini)], environ={})


def test_malformed_config_file(tmp_path):
    ini = tmp_path / "netsink.ini"
    ini.write_text("port = 1\n")

    with pytest.raises(ConfigError):
        load_config(["--config", str(ini)], environ={})


@pytest.mark.parametrize("value", ["http", "-1", "65536", "80.5"])
def test_invalid_port(value):
    with pytest.raises(ConfigError):
        load_config(["--port", value], environ={})


def test_empty_serve_means_tcp_mode():
    config = build_config({"serve": ""})
    assert config.serve is None
    assert not config.http_mode


def test_negative_log_backups():
    with pytest.raises(ConfigError):
        build_config({"log_backups": "-2"})


def test_config_is_immutable():
    config = ServerConfig()
    with pytest.raises(AttributeError):
        config.port = 1
