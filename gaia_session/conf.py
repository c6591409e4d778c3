"""
Gaia Session constants.

Values that depend on the deployment can be overridden through environment
variables; everything else is fixed by the Gaia hub protocol.
"""
import os

# Hub and naming endpoints
DEFAULT_HUB_URL = os.environ.get("GAIA_HUB_URL", "https://hub.blockstack.org")
DEFAULT_CORE_NODE = os.environ.get("GAIA_CORE_NODE", "https://core.blockstack.org")

# Storage protocol
SIGNATURE_FILE_EXTENSION = ".sig"
CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_TEXT = "text/plain"
CONTENT_TYPE_BINARY = "application/octet-stream"

# Hard ceiling for list-files page requests
MAX_LIST_PAGES = 65536

# Session store keys
USER_DATA_KEY = "userData"
TRANSIT_KEY = "transitKey"
CORE_NODE_KEY = "core-node"
