"""
Constants for netsink
"""

# TCP sink defaults
DEFAULT_INTERFACE = "0.0.0.0"
DEFAULT_TCP_PORT = 8080
READ_CHUNK_SIZE = 64 * 1024

# HTTP file server
FILE_CHUNK_SIZE = 64 * 1024
AUTH_REALM = "Restricted"
INDEX_FILE = "index.html"

# Seconds in-flight HTTP requests may take to finish once shutdown starts
SHUTDOWN_GRACE_PERIOD = 5.0

# Logging
DEFAULT_LOG_LEVEL = "info"
DEFAULT_LOG_BACKUPS = 5
LOG_FORMAT = "%(asctime)s %(levelname)s %(filename)s:%(lineno)d: %(message)s"
LOG_DATE_FORMAT = "%Y/%m/%d %H:%M:%S"
LOG_DATE_FORMAT_PRECISE = "%Y/%m/%d %H:%M:%S.%f"

# Configuration sources
ENV_PREFIX = "NETSINK_"
CONFIG_SECTION = "netsink"
