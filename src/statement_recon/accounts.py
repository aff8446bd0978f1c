"""Account directory: account code -> display name and color."""

import json
import logging
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .exceptions import ConfigurationError
from .models import Account
from .reconciler import find_code_by_name

logger = logging.getLogger(__name__)


def parse_accounts(data: Mapping[str, Any]) -> dict[str, Account]:
    """
    Build account entries from the decoded JSON configuration.

    Codes are normalized to uppercase. Legacy entries whose value is a bare
    string are read as the account name (falling back to the code when empty).

    Args:
        data: Decoded JSON object

    Returns:
        Code -> account, in file order
    """
    accounts: dict[str, Account] = {}
    for code, value in data.items():
        key = str(code).strip().upper()
        if isinstance(value, Mapping):
            accounts[key] = Account.model_validate(value)
        else:
            accounts[key] = Account(name=str(value or key))
    return accounts


class AccountDirectory(Mapping[str, Account]):
    """
    Read-only, cached view over the account configuration file.

    The file is read on first access and cached until ``invalidate`` or
    ``refresh`` is called. Reconciliation operations should work on a
    ``snapshot`` so a reload never changes the directory mid-call.
    """

    def __init__(self, path: Path | None = None):
        """Initialize the directory; nothing is read until first use."""
        self.path = path
        self._cache: dict[str, Account] | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AccountDirectory":
        """Create an in-memory directory that is not backed by a file."""
        directory = cls()
        directory._cache = parse_accounts(data)
        return directory

    @property
    def accounts(self) -> dict[str, Account]:
        if self._cache is None:
            self._cache = self._load()
        return self._cache

    def _load(self) -> dict[str, Account]:
        if self.path is None:
            return {}

        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.warning(f"Account file not found: {self.path}, directory is empty")
            return {}
        except OSError as e:
            raise ConfigurationError(
                f"Failed to read account file {self.path}: {e}"
            ) from e

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Account file {self.path} is not valid JSON: {e}"
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Account file {self.path} must contain a JSON object"
            )

        try:
            accounts = parse_accounts(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid account entry in {self.path}: {e}"
            ) from e

        logger.info(f"Loaded {len(accounts)} account(s) from {self.path}")
        return accounts

    def invalidate(self) -> None:
        """
        Drop the cached entries; the next access reloads the file.

        A directory built with ``from_mapping`` has no file to reload, so this
        is a no-op and its entries stay as given.
        """
        if self.path is not None:
            self._cache = None

    def refresh(self) -> dict[str, Account]:
        """Reload the file now and return the fresh entries."""
        self.invalidate()
        return self.accounts

    def snapshot(self) -> dict[str, Account]:
        """Detached copy of the current entries, safe to hold for one operation."""
        return {code: account.model_copy() for code, account in self.accounts.items()}

    def find_code_by_name(self, name: str) -> str | None:
        """Account code whose display name matches, first in file order."""
        return find_code_by_name(name, self.accounts)

    def __getitem__(self, code: str) -> Account:
        return self.accounts[code.upper()]

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and code.upper() in self.accounts

    def __iter__(self) -> Iterator[str]:
        return iter(self.accounts)

    def __len__(self) -> int:
        return len(self.accounts)
