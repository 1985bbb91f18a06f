"""
userpass - Configuration

Settings come from defaults, then USERPASS_* environment variables, then
command-line flags (applied by the CLI, which re-validates the result).

    USERPASS_DIR         directory holding the sources (~/.userpass)
    USERPASS_HOST        this host's name (short hostname)
    USERPASS_BACKEND     "gpg" or "vault" (gpg)
    USERPASS_ATTEMPTS    passphrase prompts before giving up (3)
    USERPASS_RECIPIENTS  comma-separated gpg recipients (symmetric if empty)
    USERPASS_GPG_BINARY  gpg executable (gpg)
    USERPASS_SCRYPT_N    scrypt cost for the vault backend
    USERPASS_LOG_LEVEL   logging level (WARNING)
"""

import os
import glob
import socket
from typing import Annotated, List, Mapping, Optional, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from . import crypto
from .cipher import GpgCipher, VaultCipher
from .session import DEFAULT_ATTEMPTS

DEFAULT_DIR = os.path.join(os.path.expanduser("~"), ".userpass")
SOURCE_PREFIX = "userpass"
BACKENDS = ("gpg", "vault")
ENV_PREFIX = "USERPASS_"

# environment names that differ from the field name
ENV_ALIASES = {"dir": "directory"}


def short_hostname() -> str:
    return socket.gethostname().split(".")[0] or "localhost"


class Config(BaseSettings):
    """Runtime settings loaded from USERPASS_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    directory: str = Field(
        default=DEFAULT_DIR,
        validation_alias="userpass_dir",
    )
    host: str = Field(default_factory=short_hostname)
    backend: str = "gpg"
    attempts: int = DEFAULT_ATTEMPTS
    recipients: Annotated[Tuple[str, ...], NoDecode] = ()
    gpg_binary: str = "gpg"
    scrypt_n: int = crypto.SCRYPT_N
    log_level: str = "WARNING"

    @field_validator("directory")
    @classmethod
    def expand_directory(cls, value: str) -> str:
        return os.path.expanduser(value)

    @field_validator("host")
    @classmethod
    def validate_host(cls, value: str) -> str:
        # the host name becomes part of a file name
        if not value or os.sep in value:
            raise ValueError(f"Invalid host name '{value}'")
        return value

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in BACKENDS:
            raise ValueError(f"Unknown backend '{value}' (expected one of {', '.join(BACKENDS)})")
        return value

    @field_validator("attempts")
    @classmethod
    def validate_attempts(cls, value: int) -> int:
        if value < 1:
            raise ValueError("attempts must be at least 1")
        return value

    @field_validator("recipients", mode="before")
    @classmethod
    def split_recipients(cls, value):
        if isinstance(value, str):
            return tuple(r.strip() for r in value.split(",") if r.strip())
        return value

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return value.upper()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Build a Config from USERPASS_* variables (os.environ by default).

        Empty variables are treated as unset.
        """
        env = os.environ if environ is None else environ
        values = {}
        for name, value in env.items():
            if not value or not name.upper().startswith(ENV_PREFIX):
                continue
            field = name[len(ENV_PREFIX):].lower()
            values[ENV_ALIASES.get(field, field)] = value
        return cls(**values)

    def replace(self, **changes) -> "Config":
        """Copy with some fields changed, validated like the original."""
        return type(self)(**{**self.model_dump(), **changes})

    @property
    def extension(self) -> str:
        return GpgCipher.extension if self.backend == "gpg" else VaultCipher.extension

    def source_for(self, host: Optional[str] = None) -> str:
        """Path of a host's source file (this host by default)."""
        name = f"{SOURCE_PREFIX}.{host or self.host}.{self.extension}"
        return os.path.join(self.directory, name)

    def discover(self) -> List[str]:
        """Every source file in the directory, sorted."""
        pattern = os.path.join(glob.escape(self.directory), f"{SOURCE_PREFIX}.*.{self.extension}")
        return sorted(glob.glob(pattern))

    def make_cipher(self):
        if self.backend == "gpg":
            return GpgCipher(binary=self.gpg_binary, recipients=self.recipients)
        return VaultCipher(scrypt_n=self.scrypt_n)
