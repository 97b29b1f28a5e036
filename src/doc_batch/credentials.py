"""
Forward-only API key rotation.

A key is rotated past only after the provider reported it out of quota, so
the rotator never revisits an earlier key within the same run.
"""

from __future__ import annotations

from typing import Sequence


class CredentialsExhausted(RuntimeError):
    """Every configured API key has been used up for this run."""


def mask_key(key: str) -> str:
    """Show only the edges of an API key in operator output."""
    if len(key) <= 8:
        return "*" * len(key)
    return f"{key[:4]}...{key[-4:]}"


class CredentialRotator:
    """
    Ordered API keys with a monotonically advancing active index.

    Args:
        keys: Keys in the order they should be used.

    Raises:
        ValueError: ``keys`` is empty.
    """

    def __init__(self, keys: Sequence[str]) -> None:
        if not keys:
            raise ValueError("CredentialRotator needs at least one API key.")
        self._keys: tuple[str, ...] = tuple(keys)
        self._index = 0

    @property
    def index(self) -> int:
        """0-based index of the active key (``len(keys)`` once exhausted)."""
        return self._index

    def __len__(self) -> int:
        return len(self._keys)

    @property
    def exhausted(self) -> bool:
        return self._index >= len(self._keys)

    def current(self) -> str:
        """
        Return the active key.

        Raises:
            CredentialsExhausted: The index has moved past the last key.
        """
        if self.exhausted:
            raise CredentialsExhausted(f"All {len(self._keys)} API keys are used up.")
        return self._keys[self._index]

    def rotate(self) -> str:
        """
        Advance to the next key and return it.

        Raises:
            CredentialsExhausted: No keys remain.  The rotator stays exhausted.
        """
        if not self.exhausted:
            self._index += 1
        if self.exhausted:
            raise CredentialsExhausted(f"All {len(self._keys)} API keys are used up.")
        print(f"  Switched to API key #{self._index + 1} ({mask_key(self._keys[self._index])})")
        return self._keys[self._index]
