"""Constants for casblob."""

# Configuration
CONFIG_FILE = "casblob.yaml"
CONFIG_ENV = "CASBLOB_CONFIG"
ENV_PREFIX = "CASBLOB_"
AZURE_CONNECTION_ENV = "AZURE_STORAGE_CONNECTION_STRING"

# Property recording where fetched content came from
FROM_PROPERTY = "from"

# Version
CASBLOB_VERSION = "0.1.0"
