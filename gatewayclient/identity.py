"""
Client Identity and Signing

Loads the X.509 certificate and private key that authenticate this client
to the gateway, and turns the private key into a signing function.

Supported private keys:
- ECDSA (P-256, P-384): DER signatures over a precomputed digest,
  normalized to low-S form as the ledger peers require
- Ed25519: signed with PyNaCl over the message bytes (pair with hashing.none)
"""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, utils
from nacl.signing import SigningKey

from .errors import CertificateParseError, FileReadError, PrivateKeyParseError

logger = logging.getLogger(__name__)

Sign = Callable[[bytes], bytes]
PrivateKey = Union[ec.EllipticCurvePrivateKey, ed25519.Ed25519PrivateKey]

# Curve group orders, used for low-S normalization
_CURVE_ORDERS = {
    "secp256r1": 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551,
    "secp384r1": int(
        "FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFF"
        "C7634D81F4372DDF581A0DB248B0A77AECEC196ACCC52973",
        16,
    ),
}

_PREHASH_BY_DIGEST_SIZE = {
    32: hashes.SHA256,
    48: hashes.SHA384,
}


@dataclass(frozen=True)
class X509Identity:
    """
    Client identity presented to the network.

    Attributes:
        msp_id: Membership service provider the certificate belongs to
        credentials: PEM-encoded X.509 certificate
    """
    msp_id: str
    credentials: bytes


def _read_file(path: str) -> bytes:
    try:
        with open(path, "rb") as f:
            return f.read()
    except OSError as e:
        raise FileReadError(path, f"failed to read file: {e.strerror or e}") from e


def certificate_from_pem(data: bytes) -> x509.Certificate:
    """Parse a PEM-encoded X.509 certificate."""
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as e:
        raise CertificateParseError(f"failed to parse certificate PEM: {e}") from e


def load_certificate(path: str) -> x509.Certificate:
    """
    Read and parse a PEM certificate file.

    Raises:
        FileReadError: If the file cannot be read
        CertificateParseError: If the content is not a PEM certificate
    """
    return certificate_from_pem(_read_file(path))


def new_x509_identity(msp_id: str, certificate: x509.Certificate) -> X509Identity:
    """Create an identity for the given MSP from a parsed certificate."""
    if not msp_id:
        raise ValueError("msp_id must not be empty")
    pem = certificate.public_bytes(serialization.Encoding.PEM)
    return X509Identity(msp_id=msp_id, credentials=pem)


def private_key_from_pem(data: bytes) -> PrivateKey:
    """Parse an unencrypted PEM private key (PKCS#8 or SEC1)."""
    try:
        key = serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise PrivateKeyParseError(f"failed to parse private key PEM: {e}") from e

    if not isinstance(key, (ec.EllipticCurvePrivateKey, ed25519.Ed25519PrivateKey)):
        raise PrivateKeyParseError(f"unsupported private key type: {type(key).__name__}")
    return key


def load_private_key(key_dir: str) -> PrivateKey:
    """
    Read the private key from a keystore directory.

    The directory is expected to hold a single key file; the first regular
    file in name order is used.

    Raises:
        FileReadError: If the directory or key file cannot be read
        PrivateKeyParseError: If the key file is not a supported PEM key
    """
    try:
        entries = sorted(os.listdir(key_dir))
    except OSError as e:
        raise FileReadError(key_dir, f"failed to read private key directory: {e.strerror or e}") from e

    files = [name for name in entries if os.path.isfile(os.path.join(key_dir, name))]
    if not files:
        raise FileReadError(key_dir, "private key directory is empty")
    if len(files) > 1:
        logger.warning("Key directory %s holds %d files, using %s", key_dir, len(files), files[0])

    return private_key_from_pem(_read_file(os.path.join(key_dir, files[0])))


def _low_s(signature: bytes, curve_name: str) -> bytes:
    order = _CURVE_ORDERS.get(curve_name)
    if order is None:
        return signature
    r, s = utils.decode_dss_signature(signature)
    if s > order // 2:
        s = order - s
    return utils.encode_dss_signature(r, s)


def new_private_key_sign(private_key: PrivateKey) -> Sign:
    """
    Create a signing function bound to a private key.

    The returned function takes a message digest and returns the signature.
    """
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        curve_name = private_key.curve.name
        if curve_name not in _CURVE_ORDERS:
            raise PrivateKeyParseError(f"unsupported ECDSA curve: {curve_name}")

        def sign(digest: bytes) -> bytes:
            prehash = _PREHASH_BY_DIGEST_SIZE.get(len(digest))
            if prehash is None:
                raise ValueError(f"unsupported digest size for ECDSA: {len(digest)}")
            der = private_key.sign(digest, ec.ECDSA(utils.Prehashed(prehash())))
            return _low_s(der, curve_name)

        return sign

    if isinstance(private_key, ed25519.Ed25519PrivateKey):
        seed = private_key.private_bytes(
            serialization.Encoding.Raw,
            serialization.PrivateFormat.Raw,
            serialization.NoEncryption(),
        )
        signing_key = SigningKey(seed)

        def sign(message: bytes) -> bytes:
            return signing_key.sign(message).signature

        return sign

    raise PrivateKeyParseError(f"unsupported private key type: {type(private_key).__name__}")
