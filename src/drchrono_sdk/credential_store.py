"""Persistent credential store scoped per profile.

The client itself never persists tokens: resuming a session is the
caller's job, through :attr:`~drchrono_sdk.client.DrChrono.credential`
and :meth:`~drchrono_sdk.client.DrChrono.restore_token`. This store is
the ready-made way of doing that, and the one the ``drchrono-sdk``
command line tool uses.

Credentials live in ``~/.local/share/drchrono-sdk/credentials/<profile>.json``
(XDG) or the platform-equivalent directory. Files are written atomically
with ``0o600`` permissions so that tokens are never world-readable, even
momentarily.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from drchrono_sdk.config import atomic_write, get_data_dir
from drchrono_sdk.models import Credential


def _credentials_dir() -> Path:
    """Return the credentials directory, creating it if needed."""
    path = get_data_dir() / "credentials"
    path.mkdir(parents=True, exist_ok=True)
    return path


class CredentialStore:
    """Read/write the credential for a single profile.

    Args:
        profile_name: The profile identifier used to derive the file name.

    Example::

        store = CredentialStore("default")
        store.save(drchrono.credential)
        saved = store.load()
        drchrono.restore_token(saved.oauth_token, saved.oauth_token_secret)
    """

    def __init__(self, profile_name: str = "default") -> None:
        self._profile_name = profile_name
        self._path = _credentials_dir() / f"{profile_name}.json"

    @property
    def path(self) -> Path:
        """The filesystem path to this profile's credential file."""
        return self._path

    def save(self, credential: Credential) -> None:
        """Persist a credential atomically with ``0o600`` permissions.

        Raises:
            OSError: If the file cannot be written.
        """
        data = credential.model_dump(mode="json")
        atomic_write(self._path, json.dumps(data, indent=2) + "\n", mode=0o600)

    def load(self) -> Optional[Credential]:
        """Load the stored credential.

        Returns:
            The :class:`~drchrono_sdk.models.Credential`, or ``None`` if the
            file does not exist or cannot be parsed.
        """
        if not self._path.is_file():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return Credential.model_validate(data)
        except (json.JSONDecodeError, ValueError, OSError):
            return None

    def is_valid(self) -> bool:
        """Return ``True`` if a stored, non-empty, unexpired credential exists."""
        credential = self.load()
        if credential is None or not credential.oauth_token:
            return False
        return not credential.is_expired()

    def clear(self) -> None:
        """Delete the stored credential file; a no-op when already absent."""
        if self._path.is_file():
            self._path.unlink()
