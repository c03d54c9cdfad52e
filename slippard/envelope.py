"""
The on-disk envelope of a store.

A store file is a length-prefixed RSA-encrypted symmetric key followed by an
AES-256-GCM sealed payload:

    [u16 big-endian N][N bytes RSA key blob][12 byte nonce][ciphertext + tag]

An empty file is a store that has been created but never written.
"""

import logging
import os
import struct
import typing

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .utils import AuthenticationError, CryptoError, FormatError

log = logging.getLogger(__name__)

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16

LENGTH_PREFIX = struct.Struct('>H')

Envelope = typing.Tuple[bytes, bytes]


def generate_symmetric_key() -> bytearray:
    """Return a fresh 256 bit key in a buffer that can be zeroed after use."""
    return bytearray(os.urandom(KEY_SIZE))


def _cipher(key: typing.Union[bytes, bytearray]) -> AESGCM:
    if len(key) != KEY_SIZE:
        raise CryptoError(f"Expected a {KEY_SIZE} byte key, got {len(key)} bytes")
    return AESGCM(bytes(key))


def seal(plaintext: bytes, key: typing.Union[bytes, bytearray]) -> bytes:
    """Encrypt plaintext with AES-256-GCM under a new random nonce."""
    nonce = os.urandom(NONCE_SIZE)
    return nonce + _cipher(key).encrypt(nonce, plaintext, None)


def open_sealed(sealed: bytes, key: typing.Union[bytes, bytearray]) -> bytes:
    if len(sealed) < NONCE_SIZE:
        raise AuthenticationError(
            f"Sealed data is {len(sealed)} bytes, shorter than the {NONCE_SIZE} byte nonce")

    nonce, ciphertext = sealed[:NONCE_SIZE], sealed[NONCE_SIZE:]
    try:
        return _cipher(key).decrypt(nonce, ciphertext, None)
    except InvalidTag as error:
        raise AuthenticationError(
            "Store failed authentication: it has been modified or was "
            "written with a different key") from error


def build_envelope(key_blob: bytes, sealed: bytes) -> bytes:
    if len(key_blob) > 0xFFFF:
        raise FormatError(f"Encrypted key of {len(key_blob)} bytes does not fit the length prefix")
    return LENGTH_PREFIX.pack(len(key_blob)) + bytes(key_blob) + sealed


def parse_envelope(data: bytes) -> Envelope:
    """Split a store file into the encrypted key blob and the sealed payload."""
    if len(data) < LENGTH_PREFIX.size:
        raise FormatError(f"Store is truncated ({len(data)} bytes)")

    (length,) = LENGTH_PREFIX.unpack_from(data)
    start = LENGTH_PREFIX.size
    end = start + length

    if len(data) < end + NONCE_SIZE:
        raise FormatError(
            f"Store is truncated: {len(data)} bytes cannot hold a {length} "
            f"byte key and a {NONCE_SIZE} byte nonce")

    log.debug(f"Parsed envelope with a {length} byte key and {len(data) - end} bytes of data")
    return data[start:end], data[end:]


def is_uninitialized(data: bytes) -> bool:
    return len(data) == 0
