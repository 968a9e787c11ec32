"""
Gateway Client Errors

Error taxonomy for credential loading, channel setup and transaction
invocation. Startup errors (credentials, connection) are fatal to the
caller; invocation errors describe a single failed call and carry the
gRPC status code reported by the gateway when one is available.
"""

from typing import Optional

import grpc


class GatewayError(Exception):
    """Base class for all gateway client errors."""


class FileReadError(GatewayError):
    """Raised when a credential file or directory cannot be read."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class CertificateParseError(GatewayError):
    """Raised when certificate PEM content cannot be decoded."""


class PrivateKeyParseError(GatewayError):
    """Raised when private key PEM content cannot be decoded or used."""


class GatewayConnectionError(GatewayError, ConnectionError):
    """Raised when the secure channel to the gateway peer cannot be opened."""

    def __init__(self, endpoint: str, message: str):
        self.endpoint = endpoint
        super().__init__(f"{endpoint}: {message}")


class InvocationError(GatewayError):
    """
    A remote invocation failed.

    Attributes:
        transaction_id: Transaction the failed call belonged to
        code: gRPC status code, or None for local failures
        details: Status details reported by the gateway
    """

    stage = "invoke"

    def __init__(
        self,
        message: str,
        transaction_id: Optional[str] = None,
        code: Optional[grpc.StatusCode] = None,
        details: Optional[str] = None,
    ):
        self.transaction_id = transaction_id
        self.code = code
        self.details = details
        super().__init__(message)

    @classmethod
    def from_rpc_error(cls, err: grpc.RpcError, transaction_id: Optional[str] = None) -> "InvocationError":
        code = err.code() if hasattr(err, "code") else None
        details = err.details() if hasattr(err, "details") else None
        name = code.name if code is not None else "UNKNOWN"
        message = f"{cls.stage} failed for transaction {transaction_id}: {name}"
        if details:
            message = f"{message}: {details}"
        error = cls(message, transaction_id=transaction_id, code=code, details=details)
        error.__cause__ = err
        return error

    def is_timeout(self) -> bool:
        return self.code == grpc.StatusCode.DEADLINE_EXCEEDED


class EvaluationError(InvocationError):
    """Raised when a read-only evaluation fails."""

    stage = "evaluate"


class SubmissionError(InvocationError):
    """Raised when a state-changing transaction fails at any stage."""

    stage = "submit"


class EndorseError(SubmissionError):
    """Endorsement was rejected or timed out."""

    stage = "endorse"


class SubmitError(SubmissionError):
    """The endorsed transaction could not be sent for ordering."""

    stage = "submit"


class CommitStatusError(SubmissionError):
    """The commit status of a submitted transaction could not be obtained."""

    stage = "commit_status"


class CommitError(SubmissionError):
    """The transaction was ordered but failed validation at commit."""

    stage = "commit"

    def __init__(self, transaction_id: str, status: str, block_number: Optional[int] = None):
        self.status = status
        self.block_number = block_number
        super().__init__(
            f"transaction {transaction_id} failed to commit with status {status}",
            transaction_id=transaction_id,
        )
