"""Unit tests for src/doc_batch/credentials.py."""

from __future__ import annotations

import pytest

from src.doc_batch.credentials import CredentialRotator, CredentialsExhausted, mask_key


class TestCredentialRotator:

    def test_current_is_first_key(self):
        rotator = CredentialRotator(["k1", "k2"])
        assert rotator.current() == "k1"
        assert rotator.index == 0

    def test_rotate_advances_forward(self):
        rotator = CredentialRotator(["k1", "k2", "k3"])
        assert rotator.rotate() == "k2"
        assert rotator.rotate() == "k3"
        assert rotator.current() == "k3"
        assert rotator.index == 2

    def test_rotate_past_last_key_raises(self):
        rotator = CredentialRotator(["k1"])
        with pytest.raises(CredentialsExhausted):
            rotator.rotate()
        assert rotator.exhausted

    def test_exhausted_state_is_terminal(self):
        rotator = CredentialRotator(["k1", "k2"])
        rotator.rotate()
        with pytest.raises(CredentialsExhausted):
            rotator.rotate()
        with pytest.raises(CredentialsExhausted):
            rotator.current()
        with pytest.raises(CredentialsExhausted):
            rotator.rotate()
        # Index never moves past the end or backwards
        assert rotator.index == 2

    def test_empty_key_list_rejected(self):
        with pytest.raises(ValueError):
            CredentialRotator([])

    def test_len(self):
        assert len(CredentialRotator(("a", "b"))) == 2


class TestMaskKey:

    def test_long_key_shows_edges_only(self):
        assert mask_key("AIzaSyExampleKey1234") == "AIza...1234"

    def test_short_key_fully_masked(self):
        assert mask_key("abc") == "***"
