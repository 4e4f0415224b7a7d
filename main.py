#!/usr/bin/env python3
"""
netsink - Main Entry Point

Streams TCP connections to stdout, or serves the current directory over
HTTP(S) when --serve is given.
"""

import sys

from netsink.server import main

if __name__ == "__main__":
    sys.exit(main())
