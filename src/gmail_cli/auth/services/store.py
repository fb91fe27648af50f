"""File-backed persistence of the credential between runs.

The credential file is readable and writable by the owning user only and
is replaced atomically, so a reader never sees a half-written document.
"""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
from pathlib import Path

from gmail_cli.auth.models.credential import Credential
from gmail_cli.auth.models.errors import (
    CredentialCorruptError,
    CredentialLoadError,
    CredentialNotFoundError,
    PersistError,
)

logger = logging.getLogger(__name__)

FILE_MODE = stat.S_IRUSR | stat.S_IWUSR  # 0600
DIR_MODE = stat.S_IRWXU  # 0700


class CredentialStore:
    """Reads and writes the persisted credential at a single path."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> Credential:
        """Load the persisted credential.

        Raises:
            CredentialNotFoundError: If no credential file exists
            CredentialCorruptError: If the file cannot be decoded
            CredentialLoadError: If the file exists but cannot be read
        """
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise CredentialNotFoundError(f"No credential file at {self.path}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise CredentialLoadError(
                f"Cannot read credential file {self.path}: {e}"
            ) from e

        try:
            credential = Credential.from_dict(json.loads(text))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise CredentialCorruptError(
                f"Credential file {self.path} is corrupt: {e}"
            ) from e

        logger.debug(f"Loaded credential from {self.path}")
        return credential

    def save(self, credential: Credential) -> None:
        """Replace the credential file with credential.

        Writes to a 0600 temp file in the same directory, fsyncs it and
        renames it over the target.

        Raises:
            PersistError: If the credential could not be written
        """
        logger.info(f"Saving credential file {self.path}")
        payload = json.dumps(credential.to_dict(), indent=2)

        directory = self.path.parent
        tmp_name: str | None = None
        try:
            if not directory.exists():
                directory.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)

            # mkstemp creates the file with mode 0600
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, FILE_MODE)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise PersistError(
                f"Failed to save credential to {self.path}: {e}"
            ) from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug(f"Could not remove temp file {tmp_name}")

    def clear(self) -> bool:
        """Delete the credential file.

        Returns:
            True if a file was removed, False if there was none
        """
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        logger.info(f"Removed credential file {self.path}")
        return True
