"""Credential lookup for bluegreen.

Credentials come from the process environment first, then from an optional
dotenv-format secrets file. Values are cached but never logged.
"""

import os
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values

from bluegreen.errors import CredentialNotFound, PreflightError


class SecretsService:
    """Looks up named credentials."""

    def __init__(self, secrets_file: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        self.secrets_file = secrets_file
        self.environ = os.environ if environ is None else environ
        self._file_values: Optional[Dict[str, Optional[str]]] = None

    def _load_file(self) -> Dict[str, Optional[str]]:
        if self._file_values is not None:
            return self._file_values

        if not self.secrets_file:
            self._file_values = {}
            return self._file_values

        path = Path(self.secrets_file)
        if not path.is_file():
            raise PreflightError(f"Secrets file not found: {self.secrets_file}")

        self._file_values = dict(dotenv_values(path))
        return self._file_values

    def get_credential(self, name: str) -> str:
        value = self.environ.get(name)
        if value:
            return value

        value = self._load_file().get(name)
        if value:
            return value

        raise CredentialNotFound(name)

    def find_credential(self, name: str) -> Optional[str]:
        try:
            return self.get_credential(name)
        except CredentialNotFound:
            return None
