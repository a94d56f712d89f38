"""Constants for blobtree."""

# Root key of every storage tree
ROOT_KEY = "/"
SEPARATOR = "/"

# Path segments starting with this prefix are reserved for backend bookkeeping
RESERVED_PREFIX = ".blobtree"

# Filesystem backend bookkeeping entries (inside the root directory)
STAGING_DIR = ".blobtree-staging"
LOCK_FILE = ".blobtree.lock"

# Chunk size used when draining streams
CHUNK_SIZE = 64 * 1024

# Staged temp files older than this are left over from a crashed writer
STALE_STAGING_HOURS = 24

# Seconds to wait for the cross-process tree lock
DEFAULT_LOCK_TIMEOUT = 300

# Streams larger than this spill from memory to disk while staged for upload
SPOOL_MAX_SIZE = 8 * 1024 * 1024

# Environment variable consulted when an Azure config has no connection string
AZURE_CONNECTION_ENV = "AZURE_STORAGE_CONNECTION_STRING"

# Version
BLOBTREE_VERSION = "0.1.0"
