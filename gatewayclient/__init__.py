"""
Ledger Gateway Client

Version: 1.0.0
License: Apache 2.0

Client library for invoking smart contracts through a ledger gateway
service. The gateway performs endorsement, ordering and commit; this
library supplies the client identity, signs every outgoing message and
carries calls over a TLS-secured gRPC channel.

Usage:
    from gatewayclient import (
        connect,
        load_certificate,
        load_private_key,
        new_grpc_connection,
        new_private_key_sign,
        new_x509_identity,
    )

    channel = new_grpc_connection("tls/ca.crt", "peer0.org1.example.com", "localhost:7051")
    identity = new_x509_identity("Org1MSP", load_certificate("msp/signcerts/cert.pem"))
    sign = new_private_key_sign(load_private_key("msp/keystore"))

    with connect(identity, sign, channel) as gateway:
        contract = gateway.get_network("mychannel").get_contract("cars")
        result = contract.evaluate_transaction("ReadCarAsset", "asset1")
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

# Errors
from .errors import (
    GatewayError,
    FileReadError,
    CertificateParseError,
    PrivateKeyParseError,
    GatewayConnectionError,
    InvocationError,
    EvaluationError,
    SubmissionError,
    EndorseError,
    SubmitError,
    CommitStatusError,
    CommitError,
)

# Identity and signing
from .identity import (
    X509Identity,
    Sign,
    certificate_from_pem,
    load_certificate,
    new_x509_identity,
    private_key_from_pem,
    load_private_key,
    new_private_key_sign,
)

# Hashing
from . import hashing

# Secure channel
from .connection import (
    new_grpc_connection,
    managed_connection,
)

# Gateway session
from .gateway import (
    CallTimeouts,
    Gateway,
    Network,
    Contract,
    Proposal,
    Transaction,
    TransactionResult,
    Commit,
    Status,
    connect,
)


__all__ = [
    "__version__",

    # Errors
    "GatewayError",
    "FileReadError",
    "CertificateParseError",
    "PrivateKeyParseError",
    "GatewayConnectionError",
    "InvocationError",
    "EvaluationError",
    "SubmissionError",
    "EndorseError",
    "SubmitError",
    "CommitStatusError",
    "CommitError",

    # Identity
    "X509Identity",
    "Sign",
    "certificate_from_pem",
    "load_certificate",
    "new_x509_identity",
    "private_key_from_pem",
    "load_private_key",
    "new_private_key_sign",

    # Hashing
    "hashing",

    # Connection
    "new_grpc_connection",
    "managed_connection",

    # Gateway
    "CallTimeouts",
    "Gateway",
    "Network",
    "Contract",
    "Proposal",
    "Transaction",
    "TransactionResult",
    "Commit",
    "Status",
    "connect",
]
