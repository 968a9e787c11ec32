"""
Ledger Protocol Messages

Protocol buffer types exchanged with the gateway service, declared from the
hyperledger fabric-protos schemas:

- msp/identities.proto
- common/common.proto
- peer/chaincode.proto
- peer/proposal_response.proto
- peer/proposal.proto
- peer/transaction.proto
- gateway/gateway.proto

Only the fields this client reads or writes are declared. Names, numbers and
types follow the published schemas, so undeclared fields travel as unknown
fields and every message stays wire compatible with the peer.

The schemas are registered in a private descriptor pool to keep clear of
other copies of the same file names in the default pool.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from google.protobuf import descriptor_pb2, descriptor_pool, timestamp_pb2
from google.protobuf.message_factory import GetMessageClass

_F = descriptor_pb2.FieldDescriptorProto

_SCALAR_TYPES = {
    "bytes": _F.TYPE_BYTES,
    "string": _F.TYPE_STRING,
    "int32": _F.TYPE_INT32,
    "uint64": _F.TYPE_UINT64,
    "bool": _F.TYPE_BOOL,
}

# (name, number, type). Type is a scalar name, a message name starting
# with ".", or "enum .<name>"; a "repeated " prefix marks a list field.
FieldSpec = Tuple[str, int, str]

TIMESTAMP = ".google.protobuf.Timestamp"


def _add_field(msg: descriptor_pb2.DescriptorProto, spec: FieldSpec) -> None:
    name, number, kind = spec
    field = msg.field.add(name=name, number=number)
    field.label = _F.LABEL_OPTIONAL
    if kind.startswith("repeated "):
        field.label = _F.LABEL_REPEATED
        kind = kind[len("repeated "):]

    if kind in _SCALAR_TYPES:
        field.type = _SCALAR_TYPES[kind]
    elif kind.startswith("enum "):
        field.type = _F.TYPE_ENUM
        field.type_name = kind[len("enum "):]
    else:
        field.type = _F.TYPE_MESSAGE
        field.type_name = kind


def _file(
    name: str,
    package: str,
    dependencies: Sequence[str],
    messages: Dict[str, List[FieldSpec]],
    enums: Optional[Dict[str, List[Tuple[str, int]]]] = None,
) -> descriptor_pb2.FileDescriptorProto:
    fdp = descriptor_pb2.FileDescriptorProto(name=name, package=package, syntax="proto3")
    fdp.dependency.extend(dependencies)
    for enum_name, values in (enums or {}).items():
        enum = fdp.enum_type.add(name=enum_name)
        for value_name, number in values:
            enum.value.add(name=value_name, number=number)
    for msg_name, fields in messages.items():
        msg = fdp.message_type.add(name=msg_name)
        for spec in fields:
            _add_field(msg, spec)
    return fdp


IDENTITIES = _file("msp/identities.proto", "msp", [], {
    "SerializedIdentity": [
        ("mspid", 1, "string"),
        ("id_bytes", 2, "bytes"),
    ],
})

COMMON = _file("common/common.proto", "common", ["google/protobuf/timestamp.proto"], {
    "Header": [
        ("channel_header", 1, "bytes"),
        ("signature_header", 2, "bytes"),
    ],
    "ChannelHeader": [
        ("type", 1, "int32"),
        ("version", 2, "int32"),
        ("timestamp", 3, TIMESTAMP),
        ("channel_id", 4, "string"),
        ("tx_id", 5, "string"),
        ("epoch", 6, "uint64"),
        ("extension", 7, "bytes"),
        ("tls_cert_hash", 8, "bytes"),
    ],
    "SignatureHeader": [
        ("creator", 1, "bytes"),
        ("nonce", 2, "bytes"),
    ],
    "Payload": [
        ("header", 1, ".common.Header"),
        ("data", 2, "bytes"),
    ],
    "Envelope": [
        ("payload", 1, "bytes"),
        ("signature", 2, "bytes"),
    ],
}, enums={
    "HeaderType": [
        ("MESSAGE", 0),
        ("CONFIG", 1),
        ("CONFIG_UPDATE", 2),
        ("ENDORSER_TRANSACTION", 3),
        ("ORDERER_TRANSACTION", 4),
        ("DELIVER_SEEK_INFO", 5),
        ("CHAINCODE_PACKAGE", 6),
    ],
})

CHAINCODE = _file("peer/chaincode.proto", "protos", [], {
    "ChaincodeID": [
        ("path", 1, "string"),
        ("name", 2, "string"),
        ("version", 3, "string"),
    ],
    "ChaincodeInput": [
        ("args", 1, "repeated bytes"),
        ("is_init", 3, "bool"),
    ],
    "ChaincodeSpec": [
        ("chaincode_id", 2, ".protos.ChaincodeID"),
        ("input", 3, ".protos.ChaincodeInput"),
        ("timeout", 4, "int32"),
    ],
    "ChaincodeInvocationSpec": [
        ("chaincode_spec", 1, ".protos.ChaincodeSpec"),
    ],
})

PROPOSAL_RESPONSE = _file("peer/proposal_response.proto", "protos", [], {
    "Response": [
        ("status", 1, "int32"),
        ("message", 2, "string"),
        ("payload", 3, "bytes"),
    ],
    "ProposalResponsePayload": [
        ("proposal_hash", 1, "bytes"),
        ("extension", 2, "bytes"),
    ],
    "Endorsement": [
        ("endorser", 1, "bytes"),
        ("signature", 2, "bytes"),
    ],
})

PROPOSAL = _file("peer/proposal.proto", "protos", ["peer/chaincode.proto", "peer/proposal_response.proto"], {
    "SignedProposal": [
        ("proposal_bytes", 1, "bytes"),
        ("signature", 2, "bytes"),
    ],
    "Proposal": [
        ("header", 1, "bytes"),
        ("payload", 2, "bytes"),
        ("extension", 3, "bytes"),
    ],
    "ChaincodeHeaderExtension": [
        ("chaincode_id", 2, ".protos.ChaincodeID"),
    ],
    "ChaincodeProposalPayload": [
        ("input", 1, "bytes"),
    ],
    "ChaincodeAction": [
        ("results", 1, "bytes"),
        ("events", 2, "bytes"),
        ("response", 3, ".protos.Response"),
        ("chaincode_id", 4, ".protos.ChaincodeID"),
    ],
})

TRANSACTION = _file("peer/transaction.proto", "protos", ["peer/proposal_response.proto"], {
    "Transaction": [
        ("actions", 1, "repeated .protos.TransactionAction"),
    ],
    "TransactionAction": [
        ("header", 1, "bytes"),
        ("payload", 2, "bytes"),
    ],
    "ChaincodeActionPayload": [
        ("chaincode_proposal_payload", 1, "bytes"),
        ("action", 2, ".protos.ChaincodeEndorsedAction"),
    ],
    "ChaincodeEndorsedAction": [
        ("proposal_response_payload", 1, "bytes"),
        ("endorsements", 2, "repeated .protos.Endorsement"),
    ],
}, enums={
    "TxValidationCode": [
        ("VALID", 0),
        ("NIL_ENVELOPE", 1),
        ("BAD_PAYLOAD", 2),
        ("BAD_COMMON_HEADER", 3),
        ("BAD_CREATOR_SIGNATURE", 4),
        ("INVALID_ENDORSER_TRANSACTION", 5),
        ("INVALID_CONFIG_TRANSACTION", 6),
        ("UNSUPPORTED_TX_PAYLOAD", 7),
        ("BAD_PROPOSAL_TXID", 8),
        ("DUPLICATE_TXID", 9),
        ("ENDORSEMENT_POLICY_FAILURE", 10),
        ("MVCC_READ_CONFLICT", 11),
        ("PHANTOM_READ_CONFLICT", 12),
        ("UNKNOWN_TX_TYPE", 13),
        ("TARGET_CHAIN_NOT_FOUND", 14),
        ("MARSHAL_TX_ERROR", 15),
        ("NIL_TXACTION", 16),
        ("EXPIRED_CHAINCODE", 17),
        ("CHAINCODE_VERSION_CONFLICT", 18),
        ("BAD_HEADER_EXTENSION", 19),
        ("BAD_CHANNEL_HEADER", 20),
        ("BAD_RESPONSE_PAYLOAD", 21),
        ("BAD_RWSET", 22),
        ("ILLEGAL_WRITESET", 23),
        ("INVALID_WRITESET", 24),
        ("INVALID_CHAINCODE", 25),
        ("NOT_VALIDATED", 254),
        ("INVALID_OTHER_REASON", 255),
    ],
})

GATEWAY = _file(
    "gateway/gateway.proto",
    "gateway",
    ["peer/proposal.proto", "peer/proposal_response.proto", "peer/transaction.proto", "common/common.proto"],
    {
        "EndorseRequest": [
            ("transaction_id", 1, "string"),
            ("channel_id", 2, "string"),
            ("proposed_transaction", 3, ".protos.SignedProposal"),
            ("endorsing_organizations", 4, "repeated string"),
        ],
        "EndorseResponse": [
            ("prepared_transaction", 1, ".common.Envelope"),
        ],
        "SubmitRequest": [
            ("transaction_id", 1, "string"),
            ("channel_id", 2, "string"),
            ("prepared_transaction", 3, ".common.Envelope"),
        ],
        "SubmitResponse": [],
        "SignedCommitStatusRequest": [
            ("request", 1, "bytes"),
            ("signature", 2, "bytes"),
        ],
        "CommitStatusRequest": [
            ("transaction_id", 1, "string"),
            ("channel_id", 2, "string"),
            ("identity", 3, "bytes"),
        ],
        "CommitStatusResponse": [
            ("result", 1, "enum .protos.TxValidationCode"),
            ("block_number", 2, "uint64"),
        ],
        "EvaluateRequest": [
            ("transaction_id", 1, "string"),
            ("channel_id", 2, "string"),
            ("proposed_transaction", 3, ".protos.SignedProposal"),
            ("target_organizations", 4, "repeated string"),
        ],
        "EvaluateResponse": [
            ("result", 1, ".protos.Response"),
        ],
    },
)

_GATEWAY_METHODS = [
    ("Endorse", "EndorseRequest", "EndorseResponse"),
    ("Submit", "SubmitRequest", "SubmitResponse"),
    ("CommitStatus", "SignedCommitStatusRequest", "CommitStatusResponse"),
    ("Evaluate", "EvaluateRequest", "EvaluateResponse"),
]

_service = GATEWAY.service.add(name="Gateway")
for _method, _input, _output in _GATEWAY_METHODS:
    _service.method.add(name=_method, input_type=f".gateway.{_input}", output_type=f".gateway.{_output}")


# ============================================================
# Descriptor Pool
# ============================================================

pool = descriptor_pool.DescriptorPool()

_timestamp_file = descriptor_pb2.FileDescriptorProto()
timestamp_pb2.DESCRIPTOR.CopyToProto(_timestamp_file)

for _fdp in (_timestamp_file, IDENTITIES, COMMON, CHAINCODE, PROPOSAL_RESPONSE, PROPOSAL, TRANSACTION, GATEWAY):
    pool.AddSerializedFile(_fdp.SerializeToString())


def _message(full_name: str):
    return GetMessageClass(pool.FindMessageTypeByName(full_name))


# msp
SerializedIdentity = _message("msp.SerializedIdentity")

# common
Header = _message("common.Header")
ChannelHeader = _message("common.ChannelHeader")
SignatureHeader = _message("common.SignatureHeader")
Payload = _message("common.Payload")
Envelope = _message("common.Envelope")

# peer
ChaincodeID = _message("protos.ChaincodeID")
ChaincodeInput = _message("protos.ChaincodeInput")
ChaincodeSpec = _message("protos.ChaincodeSpec")
ChaincodeInvocationSpec = _message("protos.ChaincodeInvocationSpec")
Response = _message("protos.Response")
ProposalResponsePayload = _message("protos.ProposalResponsePayload")
Endorsement = _message("protos.Endorsement")
SignedProposal = _message("protos.SignedProposal")
Proposal = _message("protos.Proposal")
ChaincodeHeaderExtension = _message("protos.ChaincodeHeaderExtension")
ChaincodeProposalPayload = _message("protos.ChaincodeProposalPayload")
ChaincodeAction = _message("protos.ChaincodeAction")
Transaction = _message("protos.Transaction")
TransactionAction = _message("protos.TransactionAction")
ChaincodeActionPayload = _message("protos.ChaincodeActionPayload")
ChaincodeEndorsedAction = _message("protos.ChaincodeEndorsedAction")

# gateway
EndorseRequest = _message("gateway.EndorseRequest")
EndorseResponse = _message("gateway.EndorseResponse")
SubmitRequest = _message("gateway.SubmitRequest")
SubmitResponse = _message("gateway.SubmitResponse")
SignedCommitStatusRequest = _message("gateway.SignedCommitStatusRequest")
CommitStatusRequest = _message("gateway.CommitStatusRequest")
CommitStatusResponse = _message("gateway.CommitStatusResponse")
EvaluateRequest = _message("gateway.EvaluateRequest")
EvaluateResponse = _message("gateway.EvaluateResponse")

GATEWAY_SERVICE = pool.FindServiceByName("gateway.Gateway")
TX_VALIDATION_CODE = pool.FindEnumTypeByName("protos.TxValidationCode")

ENDORSER_TRANSACTION = pool.FindEnumTypeByName("common.HeaderType").values_by_name["ENDORSER_TRANSACTION"].number
VALID = TX_VALIDATION_CODE.values_by_name["VALID"].number
