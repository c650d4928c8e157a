"""
confsync: configuration mirror for self-hosted gateways.

Keeps access tokens, routing channels, and model catalogs alive across
redeployments by round-tripping them through a revisioned remote store.
"""

import os

__version__ = "0.1.0"

CONFSYNC_HOME = os.environ.get("CONFSYNC_HOME", "~/.confsync")
