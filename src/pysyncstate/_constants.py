"""Internal constants shared across the library."""

USER_AGENT = "pysyncstate/1"
DEFAULT_STORAGE_KEY = "count"
DEFAULT_REMOTE_KEY = "count"
DEFAULT_STORAGE_SCOPE = "default"
SCOPE_SEPARATOR = ":"
