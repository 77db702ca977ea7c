"""Tests for credential validators."""

import pytest

from hyperliquid_client.exceptions import ValidationError
from hyperliquid_client.utils.validators import validate_address, validate_private_key


def test_validate_address_checksums():
    assert validate_address("0x2c7536e3605d9c16a7a3d7b1898e529396a65c23") == \
        "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"


def test_validate_address_without_prefix():
    assert validate_address("2c7536e3605d9c16a7a3d7b1898e529396a65c23").startswith("0x")


@pytest.mark.parametrize("address", ["0x123", "0x" + "g" * 40, 12345, ""])
def test_validate_address_rejects(address):
    with pytest.raises(ValidationError):
        validate_address(address)


def test_validate_private_key_normalizes():
    assert validate_private_key("AB" * 32) == "0x" + "ab" * 32


@pytest.mark.parametrize("key", ["0x1234", "zz" * 32, None])
def test_validate_private_key_rejects(key):
    with pytest.raises(ValidationError):
        validate_private_key(key)
