"""
API token persistence with owner-only file permissions.

The field API issues a bearer token at login. We keep it in a JSON file

    {
        "token": "...",
        "saved_at": "2026-01-01T08:00:00"
    }

under ~/.fieldsync/ (dir 0700, file 0600). The sync engine only needs to
know whether a token is present; the API client reads it on each request so
a re-login takes effect without restarting.
"""
import json
import os
import stat
from pathlib import Path
from typing import Optional

from fieldsync.models.audit import utcnow

# ── Constants ─────────────────────────────────────────────────────────────────

CREDENTIALS_DIR_DEFAULT = Path.home() / ".fieldsync"
TOKEN_FILE_NAME = "credentials.json"


# ── Main class ────────────────────────────────────────────────────────────────

class CredentialStore:
    """
    Manages the API token on disk.

    Usage:
        creds = CredentialStore()
        if not creds.has_token():
            creds.save_token(token)
        token = creds.load_token()   # → str or None
    """

    def __init__(self, credentials_dir: Path = CREDENTIALS_DIR_DEFAULT):
        self._credentials_dir = Path(credentials_dir)
        self._token_file = self._credentials_dir / TOKEN_FILE_NAME

    @property
    def token_file(self) -> Path:
        return self._token_file

    def has_token(self) -> bool:
        """Return True if a non-empty token is stored."""
        return bool(self.load_token())

    def save_token(self, token: str) -> None:
        """
        Persist the token with owner-only permissions.

        Directory: 0700 (rwx------)
        File:      0600 (rw-------)
        """
        if not token:
            raise ValueError("token must not be empty")
        self._credentials_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(self._credentials_dir, stat.S_IRWXU)  # 0700

        payload = {"token": token, "saved_at": utcnow().isoformat()}
        self._token_file.write_text(json.dumps(payload, indent=2))
        os.chmod(self._token_file, stat.S_IRUSR | stat.S_IWUSR)  # 0600

    def load_token(self) -> Optional[str]:
        """Return the stored token, or None if absent or unreadable."""
        if not self._token_file.exists():
            return None
        try:
            return json.loads(self._token_file.read_text()).get("token") or None
        except (OSError, ValueError):
            return None

    def clear(self) -> None:
        """Delete the token file (does not raise if already absent)."""
        if self._token_file.exists():
            self._token_file.unlink()
