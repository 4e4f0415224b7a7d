import asyncio
import datetime
import logging
import os

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from netsink.http_server import HTTPFileServer

HELLO = b"hello, world\n"


@pytest.fixture
def served_dir(tmp_path):
    """A small directory tree to serve."""
    root = tmp_path / "www"
    root.mkdir()
    (root / "hello.txt").write_bytes(HELLO)
    (root / "data.bin").write_bytes(os.urandom(200 * 1024 + 17))
    (root / "empty.txt").write_bytes(b"")
    (root / "sub").mkdir()
    (root / "sub" / "nested.txt").write_bytes(b"nested\n")
    (root / "sub" / "<odd> name.txt").write_bytes(b"odd\n")
    (root / "site").mkdir()
    (root / "site" / "index.html").write_bytes(b"<h1>index</h1>\n")
    (tmp_path / "secret.txt").write_bytes(b"outside the root\n")
    return root


@pytest.fixture
def file_server(served_dir):
    return HTTPFileServer(root=str(served_dir))


@pytest.fixture
def auth_server(served_dir):
    return HTTPFileServer(root=str(served_dir), auth_user="alice", auth_pass="s3cret")


@pytest.fixture
def tls_pair(tmp_path):
    """Self-signed certificate and key for 127.0.0.1, written as PEM files."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "localhost")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )

    cert_path = tmp_path / "cert.pem"
    key_path = tmp_path / "key.pem"
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        )
    )
    return str(cert_path), str(key_path)


@pytest.fixture
def restore_root_logger():
    """Undo handler changes made by setup_logging."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


async def wait_for_message(caplog, text, timeout=5.0):
    """Poll captured log records until one contains text."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        messages = [record.getMessage() for record in caplog.records]
        if any(text in message for message in messages):
            return messages
        if loop.time() > deadline:
            raise AssertionError(f"{text!r} not logged; got {messages}")
        await asyncio.sleep(0.01)
