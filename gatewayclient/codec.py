"""
Gateway Wire Codec

Builds the protocol buffer messages sent to the gateway service and unpacks
the ones it returns.

A proposal is a protos.Proposal whose header binds the channel, transaction
ID, creator identity and nonce, and whose payload carries a
ChaincodeInvocationSpec. Its first argument is the transaction name and the
remaining arguments are the call arguments, all as bytes.

Signatures always cover the exact serialized bytes carried next to them:
SignedProposal.proposal_bytes, Envelope.payload and
SignedCommitStatusRequest.request.
"""

import secrets
import time
from dataclasses import dataclass, field
from typing import Any, List, Sequence

import grpc

from . import protos
from .hashing import sha256_hex
from .identity import X509Identity

SERVICE_NAME = protos.GATEWAY_SERVICE.full_name

EVALUATE_METHOD = f"/{SERVICE_NAME}/Evaluate"
ENDORSE_METHOD = f"/{SERVICE_NAME}/Endorse"
SUBMIT_METHOD = f"/{SERVICE_NAME}/Submit"
COMMIT_STATUS_METHOD = f"/{SERVICE_NAME}/CommitStatus"

NONCE_LENGTH = 24


def serialize_identity(identity: X509Identity) -> bytes:
    """Serialized msp.SerializedIdentity embedded as creator in every proposal."""
    return protos.SerializedIdentity(mspid=identity.msp_id, id_bytes=identity.credentials).SerializeToString()


def new_nonce() -> bytes:
    return secrets.token_bytes(NONCE_LENGTH)


def transaction_id(nonce: bytes, creator: bytes) -> str:
    """Transaction ID: hex SHA-256 over the nonce followed by the creator bytes."""
    return sha256_hex(nonce + creator)


@dataclass(frozen=True)
class ProposalHeader:
    """Header binding a proposal to its channel, creator and nonce."""
    channel_id: str
    transaction_id: str
    creator: bytes
    nonce: bytes
    timestamp: float = field(default_factory=time.time)

    def to_message(self, chaincode_id: str):
        channel_header = protos.ChannelHeader(
            type=protos.ENDORSER_TRANSACTION,
            channel_id=self.channel_id,
            tx_id=self.transaction_id,
            epoch=0,
            extension=protos.ChaincodeHeaderExtension(
                chaincode_id=protos.ChaincodeID(name=chaincode_id),
            ).SerializeToString(),
        )
        seconds = int(self.timestamp)
        channel_header.timestamp.seconds = seconds
        channel_header.timestamp.nanos = int((self.timestamp - seconds) * 1e9)

        signature_header = protos.SignatureHeader(creator=self.creator, nonce=self.nonce)
        return protos.Header(
            channel_header=channel_header.SerializeToString(),
            signature_header=signature_header.SerializeToString(),
        )


@dataclass(frozen=True)
class ChaincodeInvocation:
    """Function call on a named chaincode. Arguments are strings on the wire."""
    chaincode_id: str
    function: str
    args: List[str] = field(default_factory=list)

    def to_message(self):
        spec = protos.ChaincodeInvocationSpec(
            chaincode_spec=protos.ChaincodeSpec(
                chaincode_id=protos.ChaincodeID(name=self.chaincode_id),
                input=protos.ChaincodeInput(
                    args=[self.function.encode("utf-8")] + [a.encode("utf-8") for a in self.args],
                ),
            ),
        )
        return protos.ChaincodeProposalPayload(input=spec.SerializeToString())


def proposal_bytes(header: ProposalHeader, invocation: ChaincodeInvocation) -> bytes:
    proposal = protos.Proposal(
        header=header.to_message(invocation.chaincode_id).SerializeToString(),
        payload=invocation.to_message().SerializeToString(),
    )
    return proposal.SerializeToString()


def signed_proposal(message: bytes, signature: bytes):
    return protos.SignedProposal(proposal_bytes=message, signature=signature)


def evaluate_request(tx_id: str, channel_id: str, proposal):
    return protos.EvaluateRequest(transaction_id=tx_id, channel_id=channel_id, proposed_transaction=proposal)


def endorse_request(tx_id: str, channel_id: str, proposal):
    return protos.EndorseRequest(transaction_id=tx_id, channel_id=channel_id, proposed_transaction=proposal)


def signed_envelope(payload: bytes, signature: bytes):
    return protos.Envelope(payload=payload, signature=signature)


def submit_request(tx_id: str, channel_id: str, envelope):
    return protos.SubmitRequest(transaction_id=tx_id, channel_id=channel_id, prepared_transaction=envelope)


def commit_status_request_bytes(tx_id: str, channel_id: str, creator: bytes) -> bytes:
    request = protos.CommitStatusRequest(transaction_id=tx_id, channel_id=channel_id, identity=creator)
    return request.SerializeToString()


def commit_status_request(request: bytes, signature: bytes):
    return protos.SignedCommitStatusRequest(request=request, signature=signature)


def endorsed_response(envelope):
    """
    Chaincode response carried inside an endorsed transaction envelope.

    Follows Payload.data -> Transaction.actions[0] -> ChaincodeActionPayload
    -> ProposalResponsePayload.extension -> ChaincodeAction.response.

    Raises:
        google.protobuf.message.DecodeError: If a nested message is malformed
        ValueError: If the transaction carries no action
    """
    payload = protos.Payload.FromString(envelope.payload)
    transaction = protos.Transaction.FromString(payload.data)
    if not transaction.actions:
        raise ValueError("endorsed transaction has no actions")
    action_payload = protos.ChaincodeActionPayload.FromString(transaction.actions[0].payload)
    response_payload = protos.ProposalResponsePayload.FromString(action_payload.action.proposal_response_payload)
    return protos.ChaincodeAction.FromString(response_payload.extension).response


def status_name(code: int) -> str:
    """Name of a TxValidationCode value; unknown codes keep their number."""
    value = protos.TX_VALIDATION_CODE.values_by_number.get(code)
    return value.name if value is not None else str(code)


class GatewayStub:
    """Unary callables for the four gateway methods on a shared channel."""

    def __init__(self, channel: grpc.Channel):
        self.evaluate = channel.unary_unary(
            EVALUATE_METHOD,
            request_serializer=protos.EvaluateRequest.SerializeToString,
            response_deserializer=protos.EvaluateResponse.FromString,
        )
        self.endorse = channel.unary_unary(
            ENDORSE_METHOD,
            request_serializer=protos.EndorseRequest.SerializeToString,
            response_deserializer=protos.EndorseResponse.FromString,
        )
        self.submit = channel.unary_unary(
            SUBMIT_METHOD,
            request_serializer=protos.SubmitRequest.SerializeToString,
            response_deserializer=protos.SubmitResponse.FromString,
        )
        self.commit_status = channel.unary_unary(
            COMMIT_STATUS_METHOD,
            request_serializer=protos.SignedCommitStatusRequest.SerializeToString,
            response_deserializer=protos.CommitStatusResponse.FromString,
        )


def strings(args: Sequence[Any]) -> List[str]:
    """Marshal call arguments to the string-typed contract interface."""
    out = []
    for a in args:
        if isinstance(a, bytes):
            out.append(a.decode('utf-8'))
        elif isinstance(a, bool):
            out.append("true" if a else "false")
        else:
            out.append(str(a))
    return out
