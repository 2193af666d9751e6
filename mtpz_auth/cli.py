#!/usr/bin/env python3
"""
mtpz-auth command line
Checks provisioned key material and runs the handshake against the
software device
"""

import argparse
import logging
import sys
from typing import List, Optional

from .device import MtpzDevice
from .encryption import RsaEngine
from .errors import MtpzError
from .key_material import default_key_material_path, load_key_material
from .simulator import SimulatedMtpzDevice, synthetic_key_material


def check_keys(args) -> int:
    """Validate a key-material file without talking to a device."""
    path = args.path or default_key_material_path()
    print(f"🔑 Checking MTPZ key material in {path}")

    try:
        key_material = load_key_material(path, strict=True)
        rsa = RsaEngine.from_key_material(key_material)
    except MtpzError as e:
        print(f"❌ {e}")
        return 1

    print(f"✓ RSA key: {rsa.public_key.key_size} bits, "
          f"public exponent {rsa.public_key.public_exponent:#x}")
    print(f"✓ Certificates: {len(key_material.certificates)} bytes")
    return 0


def simulate(args) -> int:
    """Run a full handshake against SimulatedMtpzDevice."""
    if args.synthetic:
        print("🧪 Generating synthetic key material...")
        key_material = synthetic_key_material()
    else:
        key_material = load_key_material(args.path)
        if key_material is None:
            print("❌ No usable key material, try --synthetic")
            return 1

    transport = SimulatedMtpzDevice(key_material, corrupt_nonce=args.corrupt_nonce)
    device = MtpzDevice(transport, key_material=key_material)
    device.on('state', lambda state: print(f"  → {state.value}"))

    print("🚀 Starting handshake")
    if not device.authenticate():
        print(f"❌ Handshake failed: {device.last_error}")
        return 1

    words = ", ".join(f"{w:#010x}" for w in device.last_result.trusted_words)
    print(f"✓ Trusted operations enabled ({words})")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(prog="mtpz-auth", description="MTPZ handshake tools")
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    check_parser = subparsers.add_parser('check-keys', help='Validate a key-material file')
    check_parser.add_argument('--path', help='Key-material file (default: $MTPZ_DATA or ~/.mtpz-data)')
    check_parser.set_defaults(func=check_keys)

    simulate_parser = subparsers.add_parser('simulate', help='Handshake with a software device')
    simulate_parser.add_argument('--path', help='Key-material file (default: $MTPZ_DATA or ~/.mtpz-data)')
    simulate_parser.add_argument('--synthetic', action='store_true',
                                 help='Use a throwaway key pair instead of a key file')
    simulate_parser.add_argument('--corrupt-nonce', action='store_true',
                                 help='Make the device echo a wrong nonce')
    simulate_parser.set_defaults(func=simulate)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\n⏹️  Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
