"""Constants used throughout datavcs."""

# Directory names
CONTROL_DIR = ".datavcs"
STATE_DIR = "state"
SNAPSHOTS_DIR = "snapshots"
REFS_DIR = "refs"
LOGS_DIR = "logs"
DEFAULT_STORAGE_DIR = ".datavcs-storage"

# Directories never scanned for sidecars or expanded by globs
SKIPPED_DIRS = {".git", CONTROL_DIR, DEFAULT_STORAGE_DIR}

# File names
CONFIG_FILE = "config.yaml"
MANIFEST_FILE = "datavcs.lock"
HEAD_FILE = "HEAD"
IGNORE_FILE = ".datavcsignore"

# Metadata sidecar suffixes (JSON is the default format)
METADATA_SUFFIX = ".dvs"
METADATA_TOML_SUFFIX = ".dvs.toml"

# Default ignore patterns written by `datavcs init`
DEFAULT_IGNORE_PATTERNS = [
    "*.tmp",
    "*.swp",
    "*~",
    ".DS_Store",
    "Thumbs.db",
    "__pycache__/",
]

# Hashing
DEFAULT_HASH_ALGORITHM = "sha256"
HASH_CHUNK_SIZE = 64 * 1024
SHARD_WIDTH = 2

# Serialization versions
MANIFEST_VERSION = 1
WORKSPACE_STATE_VERSION = 1

# Exit codes
EXIT_USER_ERROR = 1
