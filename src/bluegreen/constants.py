"""Shared constants for bluegreen."""

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_MANUAL_INTERVENTION = 3
EXIT_CANCELLED = 130

LABEL_SERVICE = "bluegreen.service"
LABEL_ROLE = "bluegreen.role"
LABEL_VERSION = "bluegreen.version"
LABEL_IMAGE = "bluegreen.image"

DEFAULT_STATE_DIR = ".bluegreen"
DEFAULT_CONFIG_FILE = ".bluegreen.yml"

SECRET_MARKERS = ("PASSWORD", "SECRET", "TOKEN", "KEY", "CREDENTIAL")
REDACTED = "***"
