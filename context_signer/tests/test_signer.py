"""
ContextSigner sign/verify tests.

KMS is replaced by FakeKeyService, which signs with real RSA and EC
keys, so every verification runs the actual cryptography primitives.
"""

from __future__ import annotations

import base64
import copy
import time

import pytest

from context_signer.app.core.errors import (
    KeyServiceError,
    SigningFailure,
    UnsupportedAlgorithm,
)
from context_signer.app.schemas.envelope import SigningAlgorithm
from context_signer.app.services.signer import (
    PUBLIC_KEY_UNAVAILABLE,
    SIGNATURE_REJECTED,
    ContextSigner,
)
from context_signer.app.utils.canonical import canonicalize

from context_signer.tests.fixtures.fake_kms import (
    EC_KEY_ID,
    OTHER_RSA_KEY_ID,
    RSA_KEY_ID,
    FakeKeyService,
    make_settings,
)

pytestmark = pytest.mark.anyio


# ---------------------------------------------------------------------------
# Shared fixtures
# ---------------------------------------------------------------------------

def _instrument() -> dict:
    return {"type": "fdc3.instrument", "id": {"ticker": "AAPL"}}


def _order() -> dict:
    return {
        "type": "fdc3.order",
        "id": {"orderId": "TRD-1700000000000"},
        "name": "BUY 100 AAPL",
        "instrument": {"type": "fdc3.instrument", "id": {"ticker": "AAPL"}},
        "side": "buy",
        "quantity": 100,
        "price": 187.25,
        "source": "TradingApp",
    }


@pytest.fixture
def key_service() -> FakeKeyService:
    return FakeKeyService()


@pytest.fixture
def signer(key_service) -> ContextSigner:
    return ContextSigner(make_settings(RSA_KEY_ID), key_service=key_service)


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------

async def test_sign_returns_envelope_with_original_payload(signer, key_service):
    payload = _order()
    before = int(time.time() * 1000)

    envelope = await signer.sign(payload)

    assert envelope.payload == payload
    assert list(envelope.payload) == list(payload)
    assert envelope.key_identifier == RSA_KEY_ID
    assert envelope.algorithm == "RSASSA_PKCS1_V1_5_SHA_256"
    assert before <= envelope.created_at <= int(time.time() * 1000) + 1
    assert base64.b64decode(envelope.signature, validate=True)


async def test_sign_submits_canonical_bytes(signer, key_service):
    payload = _order()

    await signer.sign(payload)

    (call,) = key_service.sign_calls
    assert call["key_id"] == RSA_KEY_ID
    assert call["message"] == canonicalize(payload)
    assert call["algorithm"] == "RSASSA_PKCS1_V1_5_SHA_256"


async def test_sign_does_not_mutate_payload(signer):
    payload = {"type": "fdc3.contact", "z": 1, "a": {"y": 2, "b": 3}}
    snapshot = copy.deepcopy(payload)

    await signer.sign(payload)

    assert payload == snapshot
    assert list(payload) == ["type", "z", "a"]


async def test_sign_uses_configured_default_algorithm(key_service):
    signer = ContextSigner(
        make_settings(
            EC_KEY_ID,
            default_signing_algorithm=SigningAlgorithm.ECDSA_SHA_256,
        ),
        key_service=key_service,
    )

    envelope = await signer.sign(_instrument())

    assert envelope.algorithm == "ECDSA_SHA_256"


async def test_sign_raises_when_no_signature_returned(signer, key_service):
    key_service.return_empty_signature = True

    with pytest.raises(SigningFailure, match="No signature returned"):
        await signer.sign(_instrument())


async def test_sign_wraps_service_errors(signer, key_service):
    key_service.fail_with = KeyServiceError("AccessDeniedException: not allowed")

    with pytest.raises(SigningFailure) as excinfo:
        await signer.sign(_instrument())

    assert "AccessDeniedException" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, KeyServiceError)


async def test_sign_rejects_context_without_type(signer, key_service):
    with pytest.raises(SigningFailure, match="'type'"):
        await signer.sign({"id": {"ticker": "AAPL"}})

    assert key_service.sign_calls == []


async def test_sign_rejects_unsupported_algorithm_before_calling_kms(
    signer, key_service
):
    with pytest.raises(UnsupportedAlgorithm):
        await signer.sign(_instrument(), "RSASSA_PSS_SHA_512")

    assert key_service.sign_calls == []


# ---------------------------------------------------------------------------
# Round trip
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "key_id, algorithm",
    [
        (RSA_KEY_ID, SigningAlgorithm.RSASSA_PKCS1_V1_5_SHA_256),
        (EC_KEY_ID, SigningAlgorithm.ECDSA_SHA_256),
    ],
)
async def test_sign_then_verify_round_trip(key_service, key_id, algorithm):
    signer = ContextSigner(make_settings(key_id), key_service=key_service)
    payload = _instrument()

    outcome = await signer.verify(await signer.sign(payload, algorithm))

    assert outcome.valid is True
    assert outcome.payload == payload
    assert outcome.error_detail is None


async def test_verify_accepts_reordered_payload(signer):
    envelope = await signer.sign(_order())
    reordered = dict(reversed(list(envelope.payload.items())))

    outcome = await signer.verify(envelope.model_copy(update={"payload": reordered}))

    assert outcome.valid is True


async def test_envelope_survives_wire_round_trip(signer):
    envelope = await signer.sign(_order())
    wire = envelope.to_wire()

    assert set(wire) == {
        "payload",
        "signature",
        "keyIdentifier",
        "createdAt",
        "algorithm",
    }

    received = type(envelope).model_validate(wire)
    outcome = await signer.verify(received)

    assert outcome.valid is True


async def test_verifier_with_other_key_checks_sender_key(key_service):
    sender = ContextSigner(make_settings(RSA_KEY_ID), key_service=key_service)
    receiver = ContextSigner(make_settings(OTHER_RSA_KEY_ID), key_service=key_service)

    outcome = await receiver.verify(await sender.sign(_order()))

    assert outcome.valid is True
    assert key_service.public_key_calls == [RSA_KEY_ID]


# ---------------------------------------------------------------------------
# Tamper detection
# ---------------------------------------------------------------------------

async def test_flipped_signature_character_is_rejected(signer):
    envelope = await signer.sign(_instrument())
    first = envelope.signature[0]
    flipped = ("B" if first == "A" else "A") + envelope.signature[1:]

    outcome = await signer.verify(envelope.model_copy(update={"signature": flipped}))

    assert outcome.valid is False
    assert outcome.payload is None
    assert outcome.error_detail == SIGNATURE_REJECTED


async def test_ecdsa_signature_tampering_is_rejected(key_service):
    signer = ContextSigner(make_settings(EC_KEY_ID), key_service=key_service)
    envelope = await signer.sign(_instrument(), "ECDSA_SHA_256")
    raw = bytearray(base64.b64decode(envelope.signature))
    raw[-1] ^= 0x01
    tampered = base64.b64encode(bytes(raw)).decode("ascii")

    outcome = await signer.verify(envelope.model_copy(update={"signature": tampered}))

    assert outcome.valid is False


@pytest.mark.parametrize(
    "mutate",
    [
        lambda p: p["id"].update(ticker="MSFT"),
        lambda p: p.update(type="fdc3.contact"),
        lambda p: p.update(extra=None),
        lambda p: p.pop("id"),
    ],
)
async def test_payload_change_after_signing_is_rejected(signer, mutate):
    envelope = await signer.sign(_instrument())
    tampered = copy.deepcopy(envelope.payload)
    mutate(tampered)

    outcome = await signer.verify(envelope.model_copy(update={"payload": tampered}))

    assert outcome.valid is False
    assert outcome.error_detail == SIGNATURE_REJECTED


async def test_malformed_signature_is_reported_not_raised(signer):
    envelope = await signer.sign(_instrument())

    outcome = await signer.verify(
        envelope.model_copy(update={"signature": "not*base64!"})
    )

    assert outcome.valid is False
    assert outcome.error_detail.startswith("Verification error:")


# ---------------------------------------------------------------------------
# Keys and algorithms
# ---------------------------------------------------------------------------

async def test_fdc3_instrument_scenario_with_different_key(signer):
    envelope = await signer.sign(_instrument())

    same_key = await signer.verify(envelope)
    other_key = await signer.verify(
        envelope.model_copy(update={"key_identifier": OTHER_RSA_KEY_ID})
    )

    assert same_key.valid is True
    assert same_key.payload == _instrument()
    assert other_key.valid is False


async def test_unsupported_algorithm_is_never_valid(signer):
    envelope = await signer.sign(_instrument())

    outcome = await signer.verify(
        envelope.model_copy(update={"algorithm": "RSASSA_PSS_SHA_256"})
    )

    assert outcome.valid is False
    assert "Unsupported algorithm: RSASSA_PSS_SHA_256" in outcome.error_detail


async def test_algorithm_swapped_to_other_family_is_rejected(signer):
    envelope = await signer.sign(_instrument())

    outcome = await signer.verify(
        envelope.model_copy(update={"algorithm": "ECDSA_SHA_256"})
    )

    assert outcome.valid is False


async def test_unknown_key_is_reported_as_unavailable(signer):
    envelope = await signer.sign(_instrument())

    outcome = await signer.verify(
        envelope.model_copy(update={"key_identifier": "alias/missing"})
    )

    assert outcome.valid is False
    assert outcome.error_detail == PUBLIC_KEY_UNAVAILABLE


async def test_empty_public_key_is_reported_as_unavailable(signer, key_service):
    envelope = await signer.sign(_instrument())
    key_service.return_empty_public_key = True

    outcome = await signer.verify(envelope)

    assert outcome.error_detail == PUBLIC_KEY_UNAVAILABLE


async def test_public_key_fetch_failure_is_reported_not_raised(signer, key_service):
    envelope = await signer.sign(_instrument())
    key_service.fail_with = KeyServiceError("EndpointConnectionError")

    outcome = await signer.verify(envelope)

    assert outcome.valid is False
    assert outcome.error_detail.startswith(PUBLIC_KEY_UNAVAILABLE)
    assert "EndpointConnectionError" in outcome.error_detail


async def test_unexpected_errors_are_reported_not_raised(signer, key_service):
    envelope = await signer.sign(_instrument())
    key_service.fail_with = ConnectionResetError("connection reset by peer")

    outcome = await signer.verify(envelope)

    assert outcome.valid is False
    assert outcome.error_detail == "Verification error: connection reset by peer"


# ---------------------------------------------------------------------------
# Public key caching
# ---------------------------------------------------------------------------

async def test_public_key_is_fetched_per_verification_by_default(signer, key_service):
    envelope = await signer.sign(_instrument())

    await signer.verify(envelope)
    await signer.verify(envelope)

    assert key_service.public_key_calls == [RSA_KEY_ID, RSA_KEY_ID]


async def test_public_key_cache_avoids_refetch_until_invalidated(key_service):
    signer = ContextSigner(
        make_settings(RSA_KEY_ID, public_key_cache_ttl_seconds=300),
        key_service=key_service,
    )
    envelope = await signer.sign(_instrument())

    await signer.verify(envelope)
    await signer.verify(envelope)
    assert key_service.public_key_calls == [RSA_KEY_ID]

    signer.invalidate_public_key(RSA_KEY_ID)
    await signer.verify(envelope)
    assert key_service.public_key_calls == [RSA_KEY_ID, RSA_KEY_ID]


async def test_signers_do_not_share_cached_keys(key_service):
    settings = make_settings(RSA_KEY_ID, public_key_cache_ttl_seconds=300)
    first = ContextSigner(settings, key_service=key_service)
    second = ContextSigner(settings, key_service=key_service)
    envelope = await first.sign(_instrument())

    await first.verify(envelope)
    await second.verify(envelope)

    assert key_service.public_key_calls == [RSA_KEY_ID, RSA_KEY_ID]
