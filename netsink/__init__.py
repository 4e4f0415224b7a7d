"""
netsink package.

A small network utility that either streams inbound TCP connections to
standard output or serves the working directory over HTTP(S).
"""

from .config import ConfigError, ServerConfig, load_config
from .http_server import HTTPFileServer
from .recorder import ResponseRecorder
from .server import ServerRunner, main, run_server
from .shutdown import ShutdownToken
from .tcp_server import TCPConnection, TCPSinkServer

__all__ = [
    'ConfigError',
    'ServerConfig',
    'load_config',
    'HTTPFileServer',
    'ResponseRecorder',
    'ServerRunner',
    'main',
    'run_server',
    'ShutdownToken',
    'TCPConnection',
    'TCPSinkServer',
]
