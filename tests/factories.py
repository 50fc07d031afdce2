"""Test doubles and raw event builders."""
import base64
import uuid
from typing import Any, Dict, List, Optional, Union

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from suipay.auth.signatures import (
    SignatureScheme,
    address_from_public_key,
    personal_message_digest,
)
from suipay.integrations.sui_client import (
    EventFilter,
    EventId,
    EventOrder,
    EventPage,
    EventSource,
)

TEST_PACKAGE_ID = "0x5e1f0c0ffee"
TEST_JWT_SECRET = "test-secret-that-is-long-enough-for-hs256"


class Wallet:
    """Test wallet producing Sui serialized personal-message signatures."""

    def __init__(self, scheme: SignatureScheme = SignatureScheme.ED25519):
        self.scheme = scheme
        if scheme is SignatureScheme.ED25519:
            self._key = ed25519.Ed25519PrivateKey.generate()
            self.public_key = self._key.public_key().public_bytes(
                serialization.Encoding.Raw, serialization.PublicFormat.Raw
            )
        else:
            curve = ec.SECP256K1() if scheme is SignatureScheme.SECP256K1 else ec.SECP256R1()
            self._key = ec.generate_private_key(curve)
            self.public_key = self._key.public_key().public_bytes(
                serialization.Encoding.X962, serialization.PublicFormat.CompressedPoint
            )
        self.address = address_from_public_key(scheme, self.public_key)

    def sign(self, message: Union[str, bytes]) -> str:
        data = message.encode("utf-8") if isinstance(message, str) else message
        digest = personal_message_digest(data)
        if self.scheme is SignatureScheme.ED25519:
            signature = self._key.sign(digest)
        else:
            r, s = decode_dss_signature(self._key.sign(digest, ec.ECDSA(hashes.SHA256())))
            signature = r.to_bytes(32, "big") + s.to_bytes(32, "big")
        return base64.b64encode(bytes([self.scheme]) + signature + self.public_key).decode()


class FakeEventSource(EventSource):
    """
    Scripted event source.

    Each fetch pops the next scripted page (or raises the next scripted
    exception). Once the script is exhausted it returns empty pages that
    leave the cursor where it is.
    """

    def __init__(self, script: Optional[List[Union[EventPage, Exception]]] = None):
        self.script = list(script or [])
        self.calls: List[Dict[str, Any]] = []

    async def fetch_page(
        self,
        event_filter: EventFilter,
        cursor: Optional[EventId],
        page_size: int,
        order: EventOrder = EventOrder.ASCENDING,
    ) -> EventPage:
        self.calls.append(
            {"filter": event_filter, "cursor": cursor, "page_size": page_size, "order": order}
        )
        if not self.script:
            return EventPage(events=[], next_cursor=cursor, has_next_page=False)
        step = self.script.pop(0)
        if isinstance(step, Exception):
            raise step
        return step


def payment_event(
    order_id: Union[uuid.UUID, str],
    tx_digest: str = "tx1",
    event_seq: str = "0",
    ref_format: str = "string",
    amount: int = 1000,
) -> Dict[str, Any]:
    """Build a raw ``payment`` event as the node renders it."""
    text = str(order_id)
    if ref_format == "utf8_bytes":
        ref_id: Any = list(text.encode("utf-8"))
    elif ref_format == "raw_bytes":
        ref_id = list(uuid.UUID(text).bytes)
    else:
        ref_id = text

    return {
        "id": {"txDigest": tx_digest, "eventSeq": event_seq},
        "packageId": TEST_PACKAGE_ID,
        "transactionModule": "payment",
        "sender": "0x" + "ab" * 32,
        "type": f"{TEST_PACKAGE_ID}::payment::PaymentEvent",
        "parsedJson": {
            "ref_id": ref_id,
            "merchant": "0x" + "cd" * 32,
            "amount": str(amount),
        },
        "timestampMs": "1760000000000",
    }

