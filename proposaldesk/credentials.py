"""Credential accessor backed by a JSON session file and the environment."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from proposaldesk.config import DEFAULT_SESSION_PATH, ENV_PREFIX
from proposaldesk.errors import UnauthorizedError

logger = logging.getLogger(__name__)

TOKEN_ENV = f"{ENV_PREFIX}_AUTH_TOKEN"
USERNAME_ENV = f"{ENV_PREFIX}_USERNAME"
EMAIL_ENV = f"{ENV_PREFIX}_EMAIL"


@dataclass(frozen=True)
class Credentials:
    """Caller identity passed explicitly into every client call."""

    auth_token: str | None = None
    username: str | None = None
    email: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.auth_token and self.auth_token.strip())

    def require_token(self) -> str:
        """Return the token or fail before any request is made."""
        if not self.is_authenticated:
            raise UnauthorizedError("Unauthorized: auth token is missing")
        return self.auth_token.strip()  # type: ignore[union-attr]

    def __repr__(self) -> str:
        token = "***" if self.is_authenticated else None
        return f"Credentials(auth_token={token!r}, username={self.username!r}, email={self.email!r})"


class SessionStore:
    """Stores the login session (token, username, email) on disk."""

    def __init__(self, path: Path | str | None = None):
        """Initialize the store.

        Args:
            path: Path to the session JSON file
        """
        self.path = Path(path) if path else DEFAULT_SESSION_PATH

    def load(self) -> Credentials:
        """Load credentials, letting environment variables override the file.

        Returns:
            Credentials, possibly without a token if nobody is logged in
        """
        stored: Any = {}
        if self.path.exists():
            try:
                stored = json.loads(self.path.read_text(encoding="utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError):
                stored = None
            if not isinstance(stored, dict):
                logger.warning(f"Ignoring unreadable session file: {self.path}")
                stored = {}

        return Credentials(
            auth_token=os.getenv(TOKEN_ENV) or stored.get("auth_token"),
            username=os.getenv(USERNAME_ENV) or stored.get("username"),
            email=os.getenv(EMAIL_ENV) or stored.get("email"),
        )

    def save(self, credentials: Credentials) -> None:
        """Persist credentials to the session file.

        Args:
            credentials: Credentials to store
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(asdict(credentials), indent=2) + "\n", encoding="utf-8")
        try:
            self.path.chmod(0o600)
        except OSError:
            logger.debug(f"Could not restrict permissions on {self.path}")
        logger.info(f"Saved session for {credentials.username}")

    def clear(self) -> bool:
        """Delete the session file.

        Returns:
            True if a session file was removed
        """
        if not self.path.exists():
            return False
        self.path.unlink()
        logger.info("Session cleared")
        return True
