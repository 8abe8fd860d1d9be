#!/usr/bin/env python3
"""
Credential Store for FOLIO

A YAML file mapping usernames to bcrypt password hashes. The file is read
on every call; registration rewrites it in full.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Union

import yaml
from passlib.context import CryptContext

from cms_errors import Conflict

logger = logging.getLogger(__name__)

# Password context for hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class CredentialStore:
    """Username -> hashed password mapping backed by a YAML file"""

    def __init__(self, path: Union[str, Path], context: Optional[CryptContext] = None):
        self.path = Path(path)
        self.context = context or pwd_context

    def load(self) -> Dict[str, str]:
        """Read the full credential mapping from disk"""
        if not self.path.exists():
            return {}

        with open(self.path, 'r') as f:
            data = yaml.safe_load(f)

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"Credential file {self.path} must contain a mapping")
        return {str(username): str(hashed) for username, hashed in data.items()}

    def verify(self, username: str, plaintext: str) -> bool:
        """Check a password against the stored hash; unknown users fail"""
        hashed = self.load().get(username)
        if hashed is None:
            # Same hashing cost as a real check
            self.context.dummy_verify()
            return False

        try:
            return self.context.verify(plaintext, hashed)
        except ValueError as e:
            logger.warning(f"Unusable password hash for user {username}: {e}")
            return False

    def append(self, username: str, plaintext: str):
        """Register a new user and rewrite the credential file"""
        credentials = self.load()
        if username in credentials:
            raise Conflict(username)

        credentials[username] = self.context.hash(plaintext)
        self._write(credentials)
        logger.info(f"Registered user {username}")

    def _write(self, credentials: Dict[str, str]):
        """Replace the credential file atomically"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, 'w') as f:
                yaml.safe_dump(credentials, f, default_flow_style=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
