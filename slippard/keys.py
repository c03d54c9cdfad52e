"""
Loading SSH/RSA private keys and RSA-PKCS#1 v1.5 wrapping of small payloads.

Only the symmetric store key is ever encrypted with the RSA key, so payloads
always fit in a single RSA block and no chunking is done.
"""

import base64
import hashlib
import logging
import pathlib
import re
import typing

import attr
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .utils import CryptoError, KeyFormatError

log = logging.getLogger(__name__)

PEM_HEADER = re.compile(rb'-----BEGIN ([A-Z0-9 ]+)-----')

PKCS1_TYPE = 'RSA PRIVATE KEY'
OPENSSH_TYPE = 'OPENSSH PRIVATE KEY'

# Bytes of PKCS#1 v1.5 padding added to every RSA block.
PKCS1_OVERHEAD = 11


@attr.s(frozen=True, repr=False)
class RSAKey:
    private_key: rsa.RSAPrivateKey = attr.ib()
    path: typing.Optional[pathlib.Path] = attr.ib(default=None)

    def __repr__(self):
        return f"RSAKey(path={self.path!r}, fingerprint={self.fingerprint!r})"

    @property
    def public_key(self) -> rsa.RSAPublicKey:
        return self.private_key.public_key()

    @property
    def key_size(self) -> int:
        return self.private_key.key_size

    @property
    def max_payload(self) -> int:
        """The largest plaintext a single PKCS#1 v1.5 block can hold."""
        return max_payload(self.public_key)

    @property
    def fingerprint(self) -> str:
        """The OpenSSH SHA256 fingerprint of the public key."""
        openssh = self.public_key.public_bytes(
            encoding=serialization.Encoding.OpenSSH,
            format=serialization.PublicFormat.OpenSSH)
        blob = base64.b64decode(openssh.split()[1])
        digest = base64.b64encode(hashlib.sha256(blob).digest()).rstrip(b'=')
        return f"SHA256:{digest.decode('ascii')}"

    def encrypt(self, plaintext: bytes) -> bytes:
        return asym_encrypt(self.public_key, plaintext)

    def decrypt(self, ciphertext: bytes) -> bytes:
        return asym_decrypt(self.private_key, ciphertext)


def pem_type(data: bytes) -> str:
    match = PEM_HEADER.search(data)
    if match is None:
        raise KeyFormatError("failed to decode PEM block")
    return match.group(1).decode('ascii')


def parse_private_key(data: bytes, password: typing.Optional[bytes] = None) -> rsa.RSAPrivateKey:
    """Parse a PKCS#1 or OpenSSH PEM container holding an RSA private key."""
    kind = pem_type(data)
    try:
        if kind == PKCS1_TYPE:
            key = serialization.load_pem_private_key(data, password=password)
        elif kind == OPENSSH_TYPE:
            key = serialization.load_ssh_private_key(data, password=password)
        else:
            raise KeyFormatError(f"unsupported key type: {kind}")
    except (ValueError, TypeError, UnsupportedAlgorithm) as error:
        raise KeyFormatError(f"failed to parse {kind}: {error}") from error

    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyFormatError("private key is not RSA")

    return key


def load_private_key(
        path: pathlib.Path,
        password: typing.Optional[bytes] = None) -> RSAKey:
    log.debug(f"Loading private key from {path}")
    try:
        data = pathlib.Path(path).read_bytes()
    except OSError as error:
        raise KeyFormatError(f"Could not read private key {path}: {error.strerror}") from error

    key = RSAKey(parse_private_key(data, password), path=pathlib.Path(path))
    log.debug(f"Loaded {key.key_size} bit RSA key {key.fingerprint}")
    return key


def public_key_of(key: RSAKey) -> rsa.RSAPublicKey:
    return key.public_key


def max_payload(public_key: rsa.RSAPublicKey) -> int:
    """The largest plaintext a single PKCS#1 v1.5 block can hold."""
    return (public_key.key_size + 7) // 8 - PKCS1_OVERHEAD


def asym_encrypt(public_key: rsa.RSAPublicKey, plaintext: bytes) -> bytes:
    limit = max_payload(public_key)
    if len(plaintext) > limit:
        raise CryptoError(
            f"Payload of {len(plaintext)} bytes is too large for a "
            f"{public_key.key_size} bit RSA key (limit {limit} bytes)")
    try:
        return public_key.encrypt(bytes(plaintext), padding.PKCS1v15())
    except ValueError as error:
        raise CryptoError(f"RSA encryption failed: {error}") from error


def asym_decrypt(private_key: rsa.RSAPrivateKey, ciphertext: bytes) -> bytes:
    try:
        return private_key.decrypt(bytes(ciphertext), padding.PKCS1v15())
    except ValueError as error:
        raise CryptoError(f"RSA decryption failed: {error}") from error
