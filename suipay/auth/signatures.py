"""
Sui wallet personal-message signature verification.

A wallet signs ``blake2b256(intent || bcs(message))`` where the intent for
personal messages is ``[3, 0, 0]`` and ``bcs(message)`` is the ULEB128 length
followed by the raw bytes. The serialized signature is
``base64(flag || signature || public_key)`` and the signer's address is
``blake2b256(flag || public_key)``.

Supported schemes: Ed25519, Secp256k1 and Secp256r1 (ECDSA over SHA-256 of
the intent digest, compact ``r || s`` encoding).
"""
import base64
import binascii
import enum
import hashlib
from dataclasses import dataclass
from typing import Dict, Tuple, Union

from cryptography.exceptions import InvalidSignature as CryptographyInvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed25519
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from .errors import InvalidSignature

PERSONAL_MESSAGE_INTENT = bytes([3, 0, 0])
SUI_ADDRESS_HEX_LENGTH = 64


class SignatureScheme(enum.IntEnum):
    """Sui signature scheme flags."""

    ED25519 = 0x00
    SECP256K1 = 0x01
    SECP256R1 = 0x02


# (signature length, public key length)
_SCHEME_SIZES: Dict[SignatureScheme, Tuple[int, int]] = {
    SignatureScheme.ED25519: (64, 32),
    SignatureScheme.SECP256K1: (64, 33),
    SignatureScheme.SECP256R1: (64, 33),
}


def uleb128(value: int) -> bytes:
    """Encode a non-negative integer as ULEB128."""
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def blake2b256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def personal_message_digest(message: bytes) -> bytes:
    """Digest a wallet actually signs for a personal message."""
    return blake2b256(PERSONAL_MESSAGE_INTENT + uleb128(len(message)) + message)


def normalize_address(address: str) -> str:
    """
    Canonicalize a Sui address to ``0x`` + 64 lower-case hex digits.

    Raises:
        InvalidSignature: If the value is not a hex address
    """
    value = (address or "").strip().lower()
    if value.startswith("0x"):
        value = value[2:]
    if not value or len(value) > SUI_ADDRESS_HEX_LENGTH:
        raise InvalidSignature("Malformed Sui address")
    try:
        int(value, 16)
    except ValueError as e:
        raise InvalidSignature("Malformed Sui address") from e
    return "0x" + value.zfill(SUI_ADDRESS_HEX_LENGTH)


def address_from_public_key(scheme: SignatureScheme, public_key: bytes) -> str:
    """Derive the Sui address controlled by a public key."""
    return "0x" + blake2b256(bytes([scheme]) + public_key).hex()


@dataclass(frozen=True)
class SerializedSignature:
    """A decoded ``flag || signature || public_key`` blob."""

    scheme: SignatureScheme
    signature: bytes
    public_key: bytes

    @classmethod
    def decode(cls, value: str) -> "SerializedSignature":
        """
        Decode a base64 serialized signature.

        Raises:
            InvalidSignature: If the blob is malformed or the scheme unsupported
        """
        try:
            raw = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError, TypeError) as e:
            raise InvalidSignature("Signature is not valid base64") from e

        if not raw:
            raise InvalidSignature("Signature is empty")

        try:
            scheme = SignatureScheme(raw[0])
        except ValueError as e:
            raise InvalidSignature(f"Unsupported signature scheme flag: {raw[0]:#04x}") from e

        sig_len, key_len = _SCHEME_SIZES[scheme]
        if len(raw) != 1 + sig_len + key_len:
            raise InvalidSignature("Signature has the wrong length for its scheme")

        return cls(
            scheme=scheme,
            signature=raw[1 : 1 + sig_len],
            public_key=raw[1 + sig_len :],
        )

    def verify_digest(self, digest: bytes) -> bool:
        """Check the signature over an intent digest."""
        try:
            if self.scheme is SignatureScheme.ED25519:
                key = ed25519.Ed25519PublicKey.from_public_bytes(self.public_key)
                key.verify(self.signature, digest)
                return True

            curve = ec.SECP256K1() if self.scheme is SignatureScheme.SECP256K1 else ec.SECP256R1()
            key = ec.EllipticCurvePublicKey.from_encoded_point(curve, self.public_key)
            r = int.from_bytes(self.signature[:32], "big")
            s = int.from_bytes(self.signature[32:], "big")
            key.verify(encode_dss_signature(r, s), digest, ec.ECDSA(hashes.SHA256()))
            return True
        except (CryptographyInvalidSignature, ValueError):
            return False


def verify_personal_message(
    address: str, message: Union[str, bytes], signature: str
) -> str:
    """
    Verify that ``address`` signed ``message``.

    Args:
        address: Claimed signer address
        message: The personal message (text is signed as UTF-8)
        signature: Base64 serialized signature

    Returns:
        str: The normalized signer address

    Raises:
        InvalidSignature: If the signature does not prove control of address
    """
    claimed = normalize_address(address)
    message_bytes = message.encode("utf-8") if isinstance(message, str) else message

    decoded = SerializedSignature.decode(signature)

    if address_from_public_key(decoded.scheme, decoded.public_key) != claimed:
        raise InvalidSignature("Public key does not match the claimed address")

    if not decoded.verify_digest(personal_message_digest(message_bytes)):
        raise InvalidSignature("Signature does not match the message")

    return claimed
