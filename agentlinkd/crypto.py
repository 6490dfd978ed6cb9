"""Cryptographic identity, key agreement, signing, and encryption using PyNaCl.

Each agent has:
- Ed25519 signing key (identity + message signing)
- X25519 exchange key (pairwise shared secret with each peer)

Messages are encrypted with the pairwise shared secret (XSalsa20-Poly1305
secret box) and the ciphertext is signed with the sender's signing key.
"""

import binascii
import json
import os
from base64 import b64decode, b64encode
from typing import Any, Union

import nacl.exceptions
from nacl.bindings import crypto_scalarmult
from nacl.public import PrivateKey, PublicKey
from nacl.secret import SecretBox
from nacl.signing import SigningKey, VerifyKey
from nacl.utils import random

from .errors import CryptoError
from .models import CiphertextRecord

SHARED_SECRET_SIZE = 32

BytesLike = Union[bytes, str]


class Identity:
    """An agent's cryptographic identity. Never transmitted."""

    def __init__(self, signing_key: SigningKey, exchange_key: PrivateKey):
        self._signing_key = signing_key
        self.verify_key = signing_key.verify_key
        self._exchange_private = exchange_key
        self.exchange_public = exchange_key.public_key

    @classmethod
    def generate(cls) -> "Identity":
        return cls(SigningKey.generate(), PrivateKey.generate())

    @classmethod
    def from_file(cls, path: str) -> "Identity":
        with open(path, "r") as f:
            try:
                data = json.load(f)
            except ValueError as e:
                raise CryptoError(f"Identity file {path} is not valid JSON: {e}") from e
        try:
            signing_seed = b64decode(data["signing_seed"])
            exchange_secret = b64decode(data["exchange_secret"])
            return cls(SigningKey(signing_seed), PrivateKey(exchange_secret))
        except (KeyError, TypeError, binascii.Error, nacl.exceptions.CryptoError) as e:
            raise CryptoError(f"Malformed identity file {path}: {e}") from e

    def save(self, path: str):
        data = {
            "signing_seed": b64encode(bytes(self._signing_key)).decode(),
            "exchange_secret": b64encode(bytes(self._exchange_private)).decode(),
            "peer_id": self.peer_id,
            "exchange_pubkey": self.exchange_pubkey_b64,
        }
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def load_or_create(cls, path: str) -> "Identity":
        if os.path.exists(path):
            return cls.from_file(path)
        identity = cls.generate()
        identity.save(path)
        return identity

    @property
    def peer_id(self) -> str:
        """Hex-encoded signing public key; how other agents address us."""
        return bytes(self.verify_key).hex()

    @property
    def exchange_pubkey_b64(self) -> str:
        return b64encode(bytes(self.exchange_public)).decode()

    @property
    def signing_secret(self) -> bytes:
        return bytes(self._signing_key)

    @property
    def exchange_secret(self) -> bytes:
        return bytes(self._exchange_private)

    def sign(self, data: BytesLike) -> str:
        """Sign data, return hex signature."""
        return sign(data, self.signing_secret)

    def shared_secret_with(self, their_exchange_public: bytes) -> bytes:
        return derive_shared_secret(self.exchange_secret, their_exchange_public)


def _to_bytes(data: BytesLike) -> bytes:
    return data.encode() if isinstance(data, str) else data


def derive_shared_secret(our_exchange_secret: bytes, their_exchange_public: bytes) -> bytes:
    """X25519 scalar multiplication.

    derive(a.secret, b.public) == derive(b.secret, a.public)
    """
    try:
        # PrivateKey and PublicKey enforce the 32-byte length; crypto_scalarmult does not
        private = PrivateKey(bytes(our_exchange_secret))
        public = PublicKey(bytes(their_exchange_public))
        return crypto_scalarmult(bytes(private), bytes(public))
    except (TypeError, nacl.exceptions.CryptoError) as e:
        raise CryptoError(f"Key agreement failed: {e}") from e


def exchange_key_from_verify_key(verify_key_hex: str) -> bytes:
    """Convert an Ed25519 public key to its X25519 counterpart."""
    try:
        vk = VerifyKey(bytes.fromhex(verify_key_hex))
        return bytes(vk.to_curve25519_public_key())
    except (ValueError, nacl.exceptions.CryptoError) as e:
        raise CryptoError(f"Cannot convert signing key to exchange key: {e}") from e


def sign(payload: BytesLike, secret_key: bytes) -> str:
    """Detached Ed25519 signature over payload, hex encoded."""
    try:
        signed = SigningKey(bytes(secret_key)).sign(_to_bytes(payload))
    except nacl.exceptions.CryptoError as e:
        raise CryptoError(f"Malformed signing key: {e}") from e
    return signed.signature.hex()


def verify(payload: BytesLike, signature_hex: str, public_key_hex: str) -> bool:
    """Verify a detached signature. Any malformed input counts as a failure."""
    try:
        vk = VerifyKey(bytes.fromhex(public_key_hex))
        vk.verify(_to_bytes(payload), bytes.fromhex(signature_hex))
        return True
    except (ValueError, TypeError, nacl.exceptions.CryptoError):
        return False


def canonical_json(plaintext: Any) -> bytes:
    return json.dumps(plaintext, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode()


def encrypt(plaintext: Any, key: bytes) -> tuple[str, str]:
    """Serialize plaintext and encrypt it under key.

    Returns (ciphertext_b64, nonce_b64). A fresh random nonce is used per call.
    """
    try:
        box = SecretBox(bytes(key))
    except nacl.exceptions.CryptoError as e:
        raise CryptoError(f"Malformed encryption key: {e}") from e
    nonce = random(SecretBox.NONCE_SIZE)
    encrypted = box.encrypt(canonical_json(plaintext), nonce)
    return b64encode(encrypted.ciphertext).decode(), b64encode(nonce).decode()


def decrypt(ciphertext_b64: str, nonce_b64: str, key: bytes) -> Any:
    """Authenticated decryption. Raises CryptoError, never returns partial plaintext."""
    try:
        box = SecretBox(bytes(key))
        ciphertext = b64decode(ciphertext_b64, validate=True)
        nonce = b64decode(nonce_b64, validate=True)
        raw = box.decrypt(ciphertext, nonce)
    except (binascii.Error, ValueError, TypeError, nacl.exceptions.CryptoError) as e:
        raise CryptoError(f"Decryption failed: {e}") from e
    try:
        return json.loads(raw)
    except ValueError as e:
        raise CryptoError(f"Decrypted payload is not valid JSON: {e}") from e


def _signed_part(ciphertext: str, nonce: str) -> bytes:
    return f"{ciphertext}:{nonce}".encode()


def seal_record(plaintext: Any, shared_secret: bytes, identity: Identity,
                recipient: str = "") -> CiphertextRecord:
    """Encrypt a plaintext envelope for a peer and sign the result."""
    ciphertext, nonce = encrypt(plaintext, shared_secret)
    return CiphertextRecord(
        ciphertext=ciphertext,
        nonce=nonce,
        signature=identity.sign(_signed_part(ciphertext, nonce)),
        sender=identity.peer_id,
        recipient=recipient,
    )


def open_record(record: CiphertextRecord, shared_secret: bytes, sender_public_key: str) -> Any:
    """Verify the sender's signature, then decrypt.

    Nothing is decrypted unless the signature checks out.
    """
    if not verify(_signed_part(record.ciphertext, record.nonce), record.signature, sender_public_key):
        raise CryptoError(f"Invalid signature from {sender_public_key[:16]}")
    return decrypt(record.ciphertext, record.nonce, shared_secret)
