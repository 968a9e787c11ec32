"""
Gateway Session

An authenticated session with the gateway service, bound to one client
identity and one shared gRPC channel.

Usage:
    channel = new_grpc_connection(tls_cert_path, gateway_peer, peer_endpoint)
    identity = new_x509_identity(msp_id, load_certificate(cert_path))
    sign = new_private_key_sign(load_private_key(key_dir))

    with connect(identity, sign, channel) as gateway:
        contract = gateway.get_network("mychannel").get_contract("cars")
        car = contract.evaluate_transaction("ReadCarAsset", "asset1")
        contract.submit_transaction("RepairCar", "asset1")

Evaluate runs a read-only query on a peer without ordering. Submit collects
endorsements, sends the endorsed transaction for ordering and then waits for
its commit status. Each stage has a fixed timeout from CallTimeouts; a caller
may pass a shorter overall timeout, never a longer one.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import grpc
from google.protobuf.message import DecodeError

from . import codec, hashing
from .errors import (
    CommitError,
    CommitStatusError,
    EndorseError,
    EvaluationError,
    GatewayError,
    SubmitError,
)
from .identity import Sign, X509Identity

logger = logging.getLogger(__name__)

VALID = "VALID"


@dataclass(frozen=True)
class CallTimeouts:
    """Fixed per-stage timeouts in seconds."""
    evaluate: float = 5.0
    endorse: float = 15.0
    submit: float = 5.0
    commit_status: float = 60.0


def deadline_after(timeout: Optional[float]) -> Optional[float]:
    """Absolute monotonic deadline for a relative timeout."""
    if timeout is None:
        return None
    return time.monotonic() + timeout


@dataclass(frozen=True)
class Status:
    """Commit status of a submitted transaction."""
    transaction_id: str
    code: str
    block_number: Optional[int] = None

    @property
    def successful(self) -> bool:
        return self.code == VALID


class _Client:
    """State shared by a gateway and every handle derived from it."""

    def __init__(
        self,
        identity: X509Identity,
        sign: Sign,
        hash_fn: hashing.Hash,
        stub: codec.GatewayStub,
        timeouts: CallTimeouts,
    ):
        self.identity = identity
        self.creator = codec.serialize_identity(identity)
        self.stub = stub
        self.timeouts = timeouts
        self._sign = sign
        self._hash = hash_fn

    def sign(self, message: bytes) -> bytes:
        return self._sign(self._hash(message))

    def timeout(self, fixed: float, deadline: Optional[float], error_cls, tx_id: str) -> float:
        if deadline is None:
            return fixed
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise error_cls(
                f"{error_cls.stage} deadline exceeded before call for transaction {tx_id}",
                transaction_id=tx_id,
                code=grpc.StatusCode.DEADLINE_EXCEEDED,
            )
        return min(fixed, remaining)

    def call(self, method, request, timeout: float, error_cls, tx_id: str):
        try:
            return method(request, timeout=timeout)
        except grpc.RpcError as e:
            raise error_cls.from_rpc_error(e, tx_id) from e


class Gateway:
    """
    Gateway session for one client identity.

    Networks and contracts obtained from the gateway are lightweight
    lookups sharing the session; they are safe to use from multiple
    threads. Closing the gateway does not close the gRPC channel, which
    is owned by the caller.
    """

    def __init__(self, client: _Client):
        self._client = client
        self._closed = False
        self._lock = threading.Lock()

    @property
    def identity(self) -> X509Identity:
        return self._client.identity

    @property
    def closed(self) -> bool:
        return self._closed

    def get_network(self, channel_name: str) -> "Network":
        if not channel_name:
            raise ValueError("channel_name must not be empty")
        return Network(self, channel_name)

    def _ensure_open(self) -> _Client:
        if self._closed:
            raise GatewayError("gateway is closed")
        return self._client

    def close(self) -> None:
        with self._lock:
            if not self._closed:
                self._closed = True
                logger.debug("Gateway session for %s closed", self._client.identity.msp_id)

    def __enter__(self) -> "Gateway":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class Network:
    """A named channel on the gateway."""

    def __init__(self, gateway: Gateway, name: str):
        self._gateway = gateway
        self.name = name

    def get_contract(self, chaincode_name: str) -> "Contract":
        if not chaincode_name:
            raise ValueError("chaincode_name must not be empty")
        return Contract(self._gateway, self.name, chaincode_name)


@dataclass(frozen=True)
class TransactionResult:
    """
    Outcome of an evaluated or committed transaction.

    Attributes:
        transaction_id: ID of the proposal that produced the result
        result: Chaincode result payload
        status: Commit status, for submitted transactions only
    """
    transaction_id: str
    result: bytes
    status: Optional[Status] = None


class Contract:
    """A smart contract deployed on a channel."""

    def __init__(self, gateway: Gateway, channel_name: str, chaincode_name: str):
        self._gateway = gateway
        self.channel_name = channel_name
        self.chaincode_name = chaincode_name

    def new_proposal(self, transaction_name: str, args: Sequence[Any] = ()) -> "Proposal":
        """Build and sign a transaction proposal."""
        client = self._gateway._ensure_open()
        nonce = codec.new_nonce()
        tx_id = codec.transaction_id(nonce, client.creator)
        header = codec.ProposalHeader(
            channel_id=self.channel_name,
            transaction_id=tx_id,
            creator=client.creator,
            nonce=nonce,
        )
        invocation = codec.ChaincodeInvocation(
            chaincode_id=self.chaincode_name,
            function=transaction_name,
            args=codec.strings(args),
        )
        message = codec.proposal_bytes(header, invocation)
        return Proposal(client, self.channel_name, tx_id, transaction_name, message, client.sign(message))

    def evaluate(
        self, transaction_name: str, args: Sequence[Any] = (), timeout: Optional[float] = None
    ) -> TransactionResult:
        """
        Evaluate a read-only transaction.

        Raises:
            EvaluationError: On any remote or decode failure
        """
        proposal = self.new_proposal(transaction_name, args)
        return TransactionResult(proposal.transaction_id, proposal.evaluate(timeout=timeout))

    def submit(
        self, transaction_name: str, args: Sequence[Any] = (), timeout: Optional[float] = None
    ) -> TransactionResult:
        """
        Submit a transaction and wait for it to commit.

        Raises:
            SubmissionError: Endorsement, ordering, commit status or commit failure
        """
        deadline = deadline_after(timeout)
        proposal = self.new_proposal(transaction_name, args)
        transaction = proposal.endorse(deadline=deadline)
        commit = transaction.submit(deadline=deadline)
        status = commit.get_status(deadline=deadline)
        if not status.successful:
            raise CommitError(status.transaction_id, status.code, status.block_number)
        return TransactionResult(transaction.transaction_id, transaction.result, status)

    def evaluate_transaction(self, transaction_name: str, *args: Any, timeout: Optional[float] = None) -> bytes:
        """Evaluate a read-only transaction and return its result payload."""
        return self.evaluate(transaction_name, args, timeout=timeout).result

    def submit_transaction(self, transaction_name: str, *args: Any, timeout: Optional[float] = None) -> bytes:
        """Submit a transaction, wait for it to commit and return the endorsed result payload."""
        return self.submit(transaction_name, args, timeout=timeout).result


class Proposal:
    """A signed transaction proposal, ready to evaluate or endorse."""

    def __init__(
        self,
        client: _Client,
        channel_name: str,
        transaction_id: str,
        transaction_name: str,
        message: bytes,
        signature: bytes,
    ):
        self._client = client
        self.channel_name = channel_name
        self.transaction_id = transaction_id
        self.transaction_name = transaction_name
        self.bytes = message
        self.signature = signature

    def _signed(self):
        return codec.signed_proposal(self.bytes, self.signature)

    def evaluate(self, timeout: Optional[float] = None) -> bytes:
        client = self._client
        tx_id = self.transaction_id
        request = codec.evaluate_request(tx_id, self.channel_name, self._signed())
        call_timeout = client.timeout(
            client.timeouts.evaluate, deadline_after(timeout), EvaluationError, tx_id
        )
        logger.debug("Evaluate %s (%s)", self.transaction_name, tx_id)
        response = client.call(client.stub.evaluate, request, call_timeout, EvaluationError, tx_id)
        return _checked_payload(response.result, EvaluationError, tx_id)

    def endorse(self, deadline: Optional[float] = None) -> "Transaction":
        client = self._client
        tx_id = self.transaction_id
        request = codec.endorse_request(tx_id, self.channel_name, self._signed())
        call_timeout = client.timeout(client.timeouts.endorse, deadline, EndorseError, tx_id)
        logger.debug("Endorse %s (%s)", self.transaction_name, tx_id)
        response = client.call(client.stub.endorse, request, call_timeout, EndorseError, tx_id)

        if not response.HasField("prepared_transaction"):
            raise EndorseError(
                f"endorse response for transaction {tx_id} has no prepared transaction",
                transaction_id=tx_id,
            )
        envelope = response.prepared_transaction
        try:
            chaincode_response = codec.endorsed_response(envelope)
        except (DecodeError, ValueError) as e:
            raise EndorseError(
                f"endorse returned an undecodable transaction for {tx_id}: {e}",
                transaction_id=tx_id,
            ) from e
        result = _checked_payload(chaincode_response, EndorseError, tx_id)
        return Transaction(client, self.channel_name, tx_id, envelope.payload, result)


class Transaction:
    """An endorsed transaction awaiting submission for ordering."""

    def __init__(self, client: _Client, channel_name: str, transaction_id: str, payload: bytes, result: bytes):
        self._client = client
        self.channel_name = channel_name
        self.transaction_id = transaction_id
        self.payload = payload
        self.result = result

    def submit(self, deadline: Optional[float] = None) -> "Commit":
        client = self._client
        tx_id = self.transaction_id
        envelope = codec.signed_envelope(self.payload, client.sign(self.payload))
        request = codec.submit_request(tx_id, self.channel_name, envelope)
        call_timeout = client.timeout(client.timeouts.submit, deadline, SubmitError, tx_id)
        logger.debug("Submit %s", tx_id)
        client.call(client.stub.submit, request, call_timeout, SubmitError, tx_id)
        return Commit(client, self.channel_name, tx_id)


class Commit:
    """A submitted transaction whose commit status can be awaited."""

    def __init__(self, client: _Client, channel_name: str, transaction_id: str):
        self._client = client
        self.channel_name = channel_name
        self.transaction_id = transaction_id

    def get_status(self, deadline: Optional[float] = None) -> Status:
        client = self._client
        tx_id = self.transaction_id
        message = codec.commit_status_request_bytes(tx_id, self.channel_name, client.creator)
        request = codec.commit_status_request(message, client.sign(message))
        call_timeout = client.timeout(client.timeouts.commit_status, deadline, CommitStatusError, tx_id)
        response = client.call(client.stub.commit_status, request, call_timeout, CommitStatusError, tx_id)
        return Status(
            transaction_id=tx_id,
            code=codec.status_name(response.result),
            block_number=response.block_number,
        )


def _checked_payload(response, error_cls, tx_id: str) -> bytes:
    """Payload of a chaincode protos.Response; status 400 and above is a failure."""
    if response.status >= 400:
        raise error_cls(
            f"{error_cls.stage} rejected for transaction {tx_id}: status {response.status}: {response.message}",
            transaction_id=tx_id,
            details=response.message,
        )
    return response.payload


def connect(
    identity: X509Identity,
    sign: Sign,
    client_connection: grpc.Channel,
    hash: hashing.Hash = hashing.sha256,
    timeouts: Optional[CallTimeouts] = None,
) -> Gateway:
    """
    Create a gateway session.

    No remote call is made here; misconfigured channel or chaincode names
    surface on the first evaluate or submit.

    Args:
        identity: Client identity presented in every proposal
        sign: Signing function for message digests
        client_connection: Open gRPC channel to the gateway peer
        hash: Digest applied before signing
        timeouts: Fixed per-stage timeouts
    """
    if identity is None or sign is None or client_connection is None:
        raise ValueError("identity, sign and client_connection are required")
    client = _Client(
        identity=identity,
        sign=sign,
        hash_fn=hash,
        stub=codec.GatewayStub(client_connection),
        timeouts=timeouts or CallTimeouts(),
    )
    return Gateway(client)


__all__ = [
    "CallTimeouts",
    "Commit",
    "Contract",
    "Gateway",
    "Network",
    "Proposal",
    "Status",
    "Transaction",
    "TransactionResult",
    "connect",
    "deadline_after",
]
