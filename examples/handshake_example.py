"""Example of authenticating with an MTPZ device."""

import logging

from mtpz_auth import HandshakeResult, HandshakeState, MtpzDevice, MtpzError
from mtpz_auth.simulator import SimulatedMtpzDevice, synthetic_key_material


def main():
    """Main example function."""
    logging.basicConfig(level=logging.INFO)

    # Replace with a real transport and drop key_material to use ~/.mtpz-data
    key_material = synthetic_key_material()
    transport = SimulatedMtpzDevice(key_material)
    device = MtpzDevice(transport, key_material=key_material)

    # Set up event handlers
    def on_state(state: HandshakeState):
        print(f"Handshake: {state.value}")

    def on_authenticated(result: HandshakeResult):
        print("Authenticated!")
        print(f"  Trusted words: {[hex(w) for w in result.trusted_words]}")

    def on_failed(error: MtpzError):
        print(f"Authentication failed in {error.state}: {error}")

    def on_disabled(_):
        print("No MTPZ key material, running without trusted operations")

    # Register event handlers
    device.on('state', on_state)
    device.on('authenticated', on_authenticated)
    device.on('failed', on_failed)
    device.on('disabled', on_disabled)

    if device.authenticate():
        print("Device is ready for trusted file operations")


if __name__ == "__main__":
    main()
