"""Configuration settings for the fsbucket file gateway."""
import os
import secrets
import string
from dataclasses import dataclass
from pathlib import Path

# Environment variables
BASE_DIR_ENV = "FSBUCKET_BASE_DIR"
SECRET_KEY_ENV = "FSBUCKET_SECRET_KEY"
PORT_ENV = "PORT"
HOST_ENV = "FSBUCKET_HOST"

DEFAULT_PORT = 8080
DEFAULT_HOST = "0.0.0.0"

# Signature constraints
MIN_SECRET_LENGTH = 64
MAX_EXPIRES_IN = 60 * 60 * 24  # 24 hours

# Path constraints
MAX_PATH_SEGMENTS = 20
MAX_SEGMENT_LENGTH = 1000

# Internal subtree of the storage root, never user-addressable
RESERVED_DIR_NAME = ".fsbucket"
STAGING_DIR_NAME = "uploads"
TEMP_SUFFIX = ".tmp"

# Streaming
CHUNK_SIZE = 64 * 1024  # 64KB

# Transfer failure alerting
FAILURE_ALERT_THRESHOLD = 5
FAILURE_WINDOW_SECONDS = 60

# Log directory
LOG_DIR = "logs"


class ConfigError(ValueError):
    """Raised when the runtime configuration is missing or invalid."""


def generate_secret_key(length: int = MIN_SECRET_LENGTH) -> str:
    chars = string.ascii_letters + string.digits
    return "".join(secrets.choice(chars) for _ in range(length))


@dataclass(frozen=True)
class BucketConfig:
    base_dir: Path
    secret_key: str
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST

    def __post_init__(self):
        if self.base_dir is None or self.base_dir == "":
            raise ConfigError(f"{BASE_DIR_ENV} is required")
        if not self.secret_key:
            raise ConfigError(
                f"{SECRET_KEY_ENV} is required. You may want to use this one: {generate_secret_key()}"
            )
        if len(self.secret_key) < MIN_SECRET_LENGTH:
            raise ConfigError(
                f"{SECRET_KEY_ENV} must be at least {MIN_SECRET_LENGTH} characters long. "
                f"You may want to use this one: {generate_secret_key()}"
            )
        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "base_dir", Path(self.base_dir).absolute())

    @property
    def staging_dir(self) -> Path:
        """Directory holding in-progress uploads."""
        return self.base_dir / RESERVED_DIR_NAME / STAGING_DIR_NAME

    @classmethod
    def from_env(cls, environ=None) -> 'BucketConfig':
        """Create BucketConfig from environment variables."""
        environ = os.environ if environ is None else environ

        base_dir = environ.get(BASE_DIR_ENV, "").strip()
        if not base_dir:
            raise ConfigError(f"{BASE_DIR_ENV} environment variable is required")

        raw_port = environ.get(PORT_ENV, str(DEFAULT_PORT))
        try:
            port = int(raw_port)
        except ValueError:
            raise ConfigError(f"Invalid {PORT_ENV}: {raw_port!r}")

        return cls(
            base_dir=Path(base_dir),
            secret_key=environ.get(SECRET_KEY_ENV, ""),
            port=port,
            host=environ.get(HOST_ENV, DEFAULT_HOST),
        )
