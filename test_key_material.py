#!/usr/bin/env python3
"""
Test script for the key-material loader.
"""

import dataclasses
import logging
import tempfile
from pathlib import Path

import pytest

from mtpz_auth import definitions as defs
from mtpz_auth.errors import ProvisioningError
from mtpz_auth.key_material import (
    KeyMaterial,
    check_key_material,
    default_key_material_path,
    format_key_material,
    load_key_material,
    parse_key_material
)
from mtpz_auth.simulator import synthetic_key_material

GOOD_RECORDS = [
    "10001",
    "00112233445566778899aabbccddeeff",
    "c" * 256,
    "a" * 255,
    "0102" * 100,
]


def records_text(records) -> str:
    return "\n".join(records) + "\n"


def test_parse_good_records():
    """Test parsing well formed records with surrounding whitespace."""
    print("Testing key-material parsing...")

    text = "  " + "\r\n".join(GOOD_RECORDS) + "\n\n"
    key_material = parse_key_material(text)

    assert key_material.public_exponent == "10001", "Public exponent not stripped"
    assert key_material.encryption_key == bytes.fromhex(GOOD_RECORDS[1]), "Wrong encryption key"
    assert key_material.modulus == "c" * 256, "Wrong modulus"
    assert key_material.private_key == "a" * 255, "Wrong private key"
    assert key_material.certificates == bytes([1, 2]) * 100, "Wrong certificates"

    print("✓ Key-material parsing test passed")


@pytest.mark.parametrize("index,value", [
    (0, "1000001"),       # exponent too long
    (0, "xyz"),           # not hex
    (1, "0011"),          # key too short
    (1, "00112233445566778899aabbccddeef"),  # odd digits
    (2, "c" * 257),       # modulus too long
    (3, ""),              # empty private key
    (4, "00" * (defs.CERTIFICATES_LENGTH + 1)),  # certificates too long
    (4, "0x0102"),        # prefix not allowed
])
def test_reject_malformed_record(index, value):
    """Test that each malformed record raises ProvisioningError."""
    records = list(GOOD_RECORDS)
    records[index] = value

    with pytest.raises(ProvisioningError):
        parse_key_material(records_text(records))


def test_reject_missing_records():
    """Test that a truncated file names the first missing record."""
    print("Testing missing records...")

    with pytest.raises(ProvisioningError, match="modulus"):
        parse_key_material(records_text(GOOD_RECORDS[:2]))

    print("✓ Missing record test passed")


def test_secrets_hidden_from_repr():
    """Test that repr() does not print key bytes."""
    print("Testing KeyMaterial repr...")

    key_material = parse_key_material(records_text(GOOD_RECORDS))
    text = repr(key_material)
    assert GOOD_RECORDS[1] not in text and "aaaa" not in text, f"Secrets in repr: {text}"

    print("✓ KeyMaterial repr test passed")


def test_format_round_trip(key_material):
    """Test that formatted key material parses back unchanged."""
    print("Testing key-material formatting...")

    assert parse_key_material(format_key_material(key_material)) == key_material, \
        "Formatted key material did not parse back"

    print("✓ Key-material formatting test passed")


def test_default_path(monkeypatch, tmp_path):
    """Test the MTPZ_DATA override and the home directory fallback."""
    print("Testing default key-material path...")

    override = tmp_path / "keys.txt"
    monkeypatch.setenv(defs.MTPZ_DATA_ENV, str(override))
    assert default_key_material_path() == override, "Environment override ignored"

    monkeypatch.delenv(defs.MTPZ_DATA_ENV)
    assert default_key_material_path().name == defs.MTPZ_DATA_FILENAME, "Wrong default file name"

    print("✓ Default path test passed")


def test_load_from_file(key_material, tmp_path):
    """Test loading a file from disk."""
    print("Testing key-material loading...")

    path = tmp_path / "mtpz-data"
    path.write_text(format_key_material(key_material))

    loaded = load_key_material(path)
    assert isinstance(loaded, KeyMaterial), "Expected KeyMaterial"
    assert loaded == key_material, "Loaded key material differs from the file"

    print("✓ Key-material loading test passed")


def test_missing_file_disables_feature(tmp_path, caplog):
    """Test that a missing file returns None and is logged only once."""
    print("Testing missing key-material file...")

    path = tmp_path / "absent"
    with caplog.at_level(logging.ERROR, logger="mtpz_auth.key_material"):
        assert load_key_material(path) is None, "Missing file should give None"
        assert load_key_material(path) is None, "Missing file should give None"

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1, f"Expected one error log, got {len(errors)}"
    assert "MTPZ disabled" in errors[0].getMessage(), "Error should say MTPZ is disabled"

    with pytest.raises(ProvisioningError):
        load_key_material(path, strict=True)

    print("✓ Missing key-material file test passed")


def test_encryption_key_helpers(key_material):
    """Test the block helpers bound to the provisioned encryption key."""
    print("Testing encryption key helpers...")

    data = bytes(range(32))
    encrypted = key_material.encrypt_blocks(data)
    assert encrypted != data, "Blocks were not encrypted"
    assert key_material.decrypt_blocks(encrypted) == data, "Blocks did not round trip"

    print("✓ Encryption key helper test passed")


def shift_private_exponent(key_material: KeyMaterial) -> KeyMaterial:
    """Return key material whose private exponent no longer matches the modulus."""
    private_exponent = int(key_material.private_key, 16) + 2
    return dataclasses.replace(key_material, private_key=f"{private_exponent:x}")


def test_check_rejects_mismatched_private_exponent(key_material):
    """Test that well formed records with an unusable RSA key are rejected."""
    print("Testing RSA key consistency check...")

    check_key_material(key_material)

    broken = shift_private_exponent(key_material)
    assert parse_key_material(format_key_material(broken)) == broken, \
        "Mismatched key must still pass the record syntax checks"
    with pytest.raises(ProvisioningError, match="RSA"):
        check_key_material(broken)

    print("✓ RSA key consistency test passed")


def test_load_mismatched_private_exponent(key_material, tmp_path):
    """Test that the loader disables MTPZ for an unusable RSA key."""
    print("Testing loading a mismatched RSA key...")

    path = tmp_path / "mismatched"
    path.write_text(format_key_material(shift_private_exponent(key_material)))

    assert load_key_material(path) is None, "Mismatched key should give None"
    with pytest.raises(ProvisioningError):
        load_key_material(path, strict=True)

    print("✓ Mismatched RSA key loading test passed")


def main():
    """Run the tests that need no pytest fixtures other than key material."""
    print("Testing MTPZ key material...")
    print("=" * 50)

    try:
        key_material = synthetic_key_material()

        test_parse_good_records()
        for index, value in [(0, "xyz"), (1, "0011"), (2, "c" * 257), (3, "")]:
            test_reject_malformed_record(index, value)
        print("✓ Malformed record tests passed")
        test_reject_missing_records()
        test_secrets_hidden_from_repr()
        test_format_round_trip(key_material)
        test_check_rejects_mismatched_private_exponent(key_material)
        test_encryption_key_helpers(key_material)

        with tempfile.TemporaryDirectory() as directory:
            test_load_from_file(key_material, Path(directory))
            test_load_mismatched_private_exponent(key_material, Path(directory))

        print("=" * 50)
        print("✅ All key-material tests passed!")

    except Exception as e:
        print(f"❌ Test failed: {e}")
        import traceback
        traceback.print_exc()
        return 1

    return 0


if __name__ == "__main__":
    exit(main())
