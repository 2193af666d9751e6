#!/usr/bin/env python3
"""
Test script for the MTPZ handshake.
Runs the orchestrator against the software device, including the
failure paths.
"""

import pytest

from mtpz_auth import definitions as defs
from mtpz_auth.encryption.rsa import RsaEngine
from mtpz_auth.errors import AuthenticationError, FramingError, MtpzError, TransportError
from mtpz_auth.event_emitter import EventEmitter
from mtpz_auth.protocols import HandshakeOrchestrator, HandshakeSession, HandshakeState
from mtpz_auth.protocols import handshake as handshake_module
from mtpz_auth.simulator import SimulatedMtpzDevice, synthetic_key_material

NONCE = bytes(range(0x10, 0x20))


class RecordingSession(HandshakeSession):
    """HandshakeSession that remembers every instance."""
    instances = []

    def __init__(self):
        super().__init__()
        RecordingSession.instances.append(self)


@pytest.fixture
def recorded_sessions(monkeypatch):
    RecordingSession.instances = []
    monkeypatch.setattr(handshake_module, "HandshakeSession", RecordingSession)
    return RecordingSession.instances


def test_successful_handshake(key_material):
    """Test a complete handshake against the simulated device."""
    print("Testing successful handshake...")

    device = SimulatedMtpzDevice(key_material)
    emitter = EventEmitter()
    states = []
    emitter.on('state', states.append)

    orchestrator = HandshakeOrchestrator(device, key_material,
                                         nonce_factory=lambda: NONCE, emitter=emitter)
    result = orchestrator.run()

    assert result.state is HandshakeState.SESSION_OPEN, f"Wrong final state: {result.state}"
    assert result.nonce_verified, "Nonce should be verified"
    assert orchestrator.state is HandshakeState.SESSION_OPEN, "Orchestrator not in SESSION_OPEN"
    assert device.trusted, "Device did not enable trusted operations"
    assert result.trusted_words == device.trusted_words, "Trusted words differ"
    assert states == [
        HandshakeState.RESET,
        HandshakeState.CERT_SENT,
        HandshakeState.RESPONSE_VALIDATED,
        HandshakeState.CONFIRMED,
        HandshakeState.SESSION_OPEN,
    ], f"Unexpected transitions: {states}"

    assert len(device.requests) == 2, f"Expected 2 requests, got {len(device.requests)}"
    assert device.requests[0][638:654] == NONCE, "Nonce not sent in the certificate message"
    assert device.requests[1][:4] == defs.CONFIRMATION_MARKER, "Second request is not a confirmation"

    print("✓ Successful handshake test passed")


def test_session_wiped_after_success(key_material, recorded_sessions):
    """Test that session secrets are zeroed once the handshake is done."""
    print("Testing session wipe after success...")

    HandshakeOrchestrator(SimulatedMtpzDevice(key_material), key_material).run()

    assert len(recorded_sessions) == 1, "Expected one session"
    session = recorded_sessions[0]
    assert not any(session.nonce), "Nonce not wiped"
    assert not any(session.session_key), "Session key not wiped"
    assert not any(session.mac_hash), "MAC-hash not wiped"

    print("✓ Session wipe test passed")


def test_nonce_mismatch_is_authentication_error(key_material, recorded_sessions):
    """Test that a wrong nonce echo fails authentication."""
    print("Testing nonce mismatch...")

    device = SimulatedMtpzDevice(key_material, corrupt_nonce=True)
    orchestrator = HandshakeOrchestrator(device, key_material)

    with pytest.raises(AuthenticationError) as excinfo:
        orchestrator.run()

    assert excinfo.value.state is HandshakeState.RESPONSE_VALIDATED, \
        f"Raised in wrong state: {excinfo.value.state}"
    assert orchestrator.state is HandshakeState.FAILED, "Orchestrator not in FAILED"
    assert len(device.requests) == 1, "Confirmation must not be sent"
    assert not device.trusted, "Device must not be trusted"
    assert not any(recorded_sessions[0].session_key), "Session key not wiped on failure"

    print("✓ Nonce mismatch test passed")


def test_bad_length_marker_fails_before_crypto(key_material, monkeypatch):
    """Test that a wrong payload length is rejected before RSA work."""
    print("Testing framing check ordering...")

    decrypt_calls = []
    original_decrypt = RsaEngine.decrypt

    def spy_decrypt(self, data, out_len):
        decrypt_calls.append(data)
        return original_decrypt(self, data, out_len)

    monkeypatch.setattr(RsaEngine, "decrypt", spy_decrypt)

    device = SimulatedMtpzDevice(key_material, payload_length=0x0341)
    with pytest.raises(FramingError) as excinfo:
        HandshakeOrchestrator(device, key_material).run()

    assert excinfo.value.state is HandshakeState.RESPONSE_VALIDATED, \
        f"Raised in wrong state: {excinfo.value.state}"
    assert decrypt_calls == [], "RSA decryption ran on a malformed frame"

    print("✓ Framing check ordering test passed")


def test_bad_response_marker(key_material):
    """Test that a wrong leading marker is a framing error."""
    device = SimulatedMtpzDevice(key_material, response_marker=b"\x02\x05")
    with pytest.raises(FramingError):
        HandshakeOrchestrator(device, key_material).run()


@pytest.mark.parametrize("operation,state", [
    ('reset_handshake', HandshakeState.RESET),
    ('send_request', HandshakeState.CERT_SENT),
    ('get_response', HandshakeState.RESPONSE_VALIDATED),
    ('enable_trusted_operations', HandshakeState.SESSION_OPEN),
])
def test_transport_status_errors(key_material, operation, state):
    """Test that non-OK statuses raise TransportError in the right state."""
    device = SimulatedMtpzDevice(key_material, statuses={operation: defs.PTP_RC_GENERAL_ERROR})
    orchestrator = HandshakeOrchestrator(device, key_material)

    with pytest.raises(TransportError) as excinfo:
        orchestrator.run()

    assert excinfo.value.status == defs.PTP_RC_GENERAL_ERROR, "Status not carried"
    assert excinfo.value.state is state, f"Raised in {excinfo.value.state}, expected {state}"
    assert orchestrator.state is HandshakeState.FAILED, "Orchestrator not in FAILED"


def test_device_rejects_foreign_signature(key_material):
    """Test that a device provisioned with another key refuses the certificate."""
    print("Testing signature rejection...")

    device = SimulatedMtpzDevice(synthetic_key_material())
    with pytest.raises(TransportError) as excinfo:
        HandshakeOrchestrator(device, key_material).run()

    assert excinfo.value.state is HandshakeState.CERT_SENT, \
        f"Raised in wrong state: {excinfo.value.state}"
    assert isinstance(device.last_error, AuthenticationError), \
        f"Device should report a bad signature, got {device.last_error!r}"

    print("✓ Signature rejection test passed")


def test_nonce_verified_reflects_echo_check(key_material, monkeypatch):
    """Test that nonce_verified comes from comparing the echo with the sent nonce."""
    print("Testing nonce verification flag...")

    compared = []
    original_compare = handshake_module.hmac.compare_digest

    def spy_compare(a, b):
        compared.append((bytes(a), bytes(b)))
        return original_compare(a, b)

    monkeypatch.setattr(handshake_module.hmac, "compare_digest", spy_compare)

    result = HandshakeOrchestrator(SimulatedMtpzDevice(key_material), key_material,
                                   nonce_factory=lambda: NONCE).run()

    assert compared == [(NONCE, NONCE)], f"Echo not compared with the nonce: {compared}"
    assert result.nonce_verified, "Verified echo not reported"

    print("✓ Nonce verification flag test passed")


def test_orchestrator_runs_once(key_material):
    """Test that an orchestrator cannot be reused."""
    orchestrator = HandshakeOrchestrator(SimulatedMtpzDevice(key_material), key_material)
    orchestrator.run()

    with pytest.raises(MtpzError):
        orchestrator.run()


def main():
    """Run the tests that need no pytest fixtures."""
    print("Testing MTPZ handshake...")
    print("=" * 50)

    try:
        key_material = synthetic_key_material()
        test_successful_handshake(key_material)
        test_bad_response_marker(key_material)
        test_device_rejects_foreign_signature(key_material)
        test_orchestrator_runs_once(key_material)

        print("=" * 50)
        print("✅ All handshake tests passed!")

    except Exception as e:
        print(f"❌ Test failed: {e}")
        import traceback
        traceback.print_exc()
        return 1

    return 0


if __name__ == "__main__":
    exit(main())
