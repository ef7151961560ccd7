"""Unit tests for the validation module."""

import pytest

from aznpm.core.validation import (
    MAX_CHAIN_NAME_LENGTH,
    validate_chain_name,
    validate_lock_wait,
    validate_position,
)
from aznpm.core.exceptions import ValidationError


class TestValidateChainName:
    """Tests for iptables chain name validation."""

    def test_valid_chain_names(self):
        """Built-in, kube and NPM chain names should pass."""
        assert validate_chain_name("FORWARD") == "FORWARD"
        assert validate_chain_name("KUBE-SERVICES") == "KUBE-SERVICES"
        assert validate_chain_name("AZURE-NPM-INGRESS-DROPS") == "AZURE-NPM-INGRESS-DROPS"
        assert validate_chain_name("cali_fw.eth0") == "cali_fw.eth0"

    def test_empty_chain_name(self):
        """Empty names should fail."""
        with pytest.raises(ValidationError) as exc:
            validate_chain_name("")
        assert "cannot be empty" in str(exc.value)

    def test_too_long_chain_name(self):
        """Names beyond the kernel limit should fail."""
        with pytest.raises(ValidationError) as exc:
            validate_chain_name("A" * (MAX_CHAIN_NAME_LENGTH + 1))
        assert "exceeds maximum length" in str(exc.value)

    def test_max_length_chain_name(self):
        """Names at exactly the limit should pass."""
        name = "A" * MAX_CHAIN_NAME_LENGTH
        assert validate_chain_name(name) == name

    def test_invalid_characters(self):
        """Whitespace and shell metacharacters should fail."""
        for name in ["KUBE SERVICES", "FORWARD;", "a$b", "-j ACCEPT"]:
            with pytest.raises(ValidationError):
                validate_chain_name(name)

    def test_chain_type_in_message(self):
        """Label should show up in the error message."""
        with pytest.raises(ValidationError) as exc:
            validate_chain_name("", chain_type="peer chain")
        assert "Peer chain name" in str(exc.value)


class TestValidatePosition:
    """Tests for rule position validation."""

    def test_valid_positions(self):
        assert validate_position(1) == 1
        assert validate_position(42) == 42

    def test_zero_and_negative(self):
        """Positions start at 1."""
        for value in [0, -1]:
            with pytest.raises(ValidationError) as exc:
                validate_position(value)
            assert exc.value.hint == "Rule positions start at 1"


class TestValidateLockWait:
    """Tests for lock wait validation."""

    def test_valid(self):
        assert validate_lock_wait(60) == 60

    def test_zero(self):
        with pytest.raises(ValidationError):
            validate_lock_wait(0)
