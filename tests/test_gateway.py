"""
Gateway Session Test Suite

Drives Contract / Proposal / Transaction / Commit against an in-process
channel that serializes every request and reply with the gateway protocol
buffer messages.

Invariants tested:
    - Every outgoing message is signed over the exact bytes sent
    - Transaction IDs derive from nonce and creator
    - Submit runs endorse, submit, commit status in order
    - Remote failures and undecodable replies surface as stage-specific errors
    - A caller timeout only ever shortens the fixed stage timeout
"""

import time
import unittest

import grpc
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, utils
from fastapi.testclient import TestClient
from google.protobuf.message import DecodeError

from carsapp import main
from carsapp.dispatcher import OperationDispatcher
from gatewayclient import (
    CallTimeouts,
    CommitError,
    EndorseError,
    EvaluationError,
    GatewayError,
    SubmitError,
    connect,
    hashing,
    new_private_key_sign,
)
from gatewayclient import codec, protos
from gatewayclient.identity import X509Identity

GARBAGE = b"\x0a\x05ab"

REQUEST_TYPES = {
    codec.EVALUATE_METHOD: protos.EvaluateRequest,
    codec.ENDORSE_METHOD: protos.EndorseRequest,
    codec.SUBMIT_METHOD: protos.SubmitRequest,
    codec.COMMIT_STATUS_METHOD: protos.SignedCommitStatusRequest,
}


class StatusRpcError(grpc.RpcError):
    def __init__(self, code, details=""):
        super().__init__(details)
        self._code = code
        self._details = details

    def code(self):
        return self._code

    def details(self):
        return self._details


def prepared_envelope(result: bytes, status: int = 200, message: str = ""):
    """Endorsed transaction envelope carrying a chaincode response."""
    action = protos.ChaincodeAction(response=protos.Response(status=status, message=message, payload=result))
    response_payload = protos.ProposalResponsePayload(extension=action.SerializeToString())
    action_payload = protos.ChaincodeActionPayload(
        action=protos.ChaincodeEndorsedAction(proposal_response_payload=response_payload.SerializeToString()),
    )
    transaction = protos.Transaction(actions=[protos.TransactionAction(payload=action_payload.SerializeToString())])
    payload = protos.Payload(data=transaction.SerializeToString())
    return protos.Envelope(payload=payload.SerializeToString())


class FakeChannel:
    """
    In-process stand-in for grpc.Channel routing unary calls to handlers.

    Handlers return a reply message, or raw bytes to send as-is. A reply
    the deserializer rejects fails the call with INTERNAL, as grpc does.
    """

    def __init__(self):
        self.requests = []
        self.closed = False
        self.handlers = {
            codec.EVALUATE_METHOD: lambda req: protos.EvaluateResponse(
                result=protos.Response(status=200, payload=b'{"ID":"asset1"}'),
            ),
            codec.ENDORSE_METHOD: lambda req: protos.EndorseResponse(
                prepared_transaction=prepared_envelope(b"endorsed"),
            ),
            codec.SUBMIT_METHOD: lambda req: protos.SubmitResponse(),
            codec.COMMIT_STATUS_METHOD: lambda req: protos.CommitStatusResponse(result=protos.VALID, block_number=7),
        }

    def unary_unary(self, path, request_serializer=None, response_deserializer=None):
        def call(request, timeout=None):
            wire = request_serializer(request)
            self.requests.append((path, wire, timeout))
            response = self.handlers[path](request)
            if not isinstance(response, bytes):
                response = response.SerializeToString()
            try:
                return response_deserializer(response)
            except DecodeError as e:
                raise StatusRpcError(grpc.StatusCode.INTERNAL, "Exception deserializing response!") from e

        return call

    def close(self):
        self.closed = True

    def paths(self):
        return [p for p, _, _ in self.requests]

    def request(self, index):
        """Decoded request message and timeout of the index-th call."""
        path, wire, timeout = self.requests[index]
        return REQUEST_TYPES[path].FromString(wire), timeout


class GatewayTestCase(unittest.TestCase):
    def setUp(self):
        self.key = ec.generate_private_key(ec.SECP256R1())
        self.identity = X509Identity(msp_id="Org1MSP", credentials=b"-----BEGIN CERTIFICATE-----\nfake\n")
        self.channel = FakeChannel()
        self.gateway = connect(
            self.identity,
            new_private_key_sign(self.key),
            self.channel,
            timeouts=CallTimeouts(evaluate=5, endorse=15, submit=5, commit_status=60),
        )
        self.contract = self.gateway.get_network("mychannel").get_contract("cars")

    def assertSignedOver(self, message: bytes, signature: bytes):
        self.key.public_key().verify(
            signature, hashing.sha256(message), ec.ECDSA(utils.Prehashed(hashes.SHA256()))
        )


class TestGatewayService(unittest.TestCase):
    """Test the service description the stub calls into."""

    def test_method_paths_match_service(self):
        methods = protos.GATEWAY_SERVICE.methods_by_name
        self.assertEqual(protos.GATEWAY_SERVICE.full_name, "gateway.Gateway")
        self.assertEqual(codec.EVALUATE_METHOD, "/gateway.Gateway/Evaluate")
        self.assertEqual(codec.COMMIT_STATUS_METHOD, "/gateway.Gateway/CommitStatus")
        for path, request_type in REQUEST_TYPES.items():
            method = methods[path.rsplit("/", 1)[1]]
            self.assertEqual(method.input_type.full_name, request_type.DESCRIPTOR.full_name)

    def test_unknown_status_code_keeps_number(self):
        self.assertEqual(codec.status_name(protos.VALID), "VALID")
        self.assertEqual(codec.status_name(11), "MVCC_READ_CONFLICT")
        self.assertEqual(codec.status_name(9999), "9999")


class TestEvaluate(GatewayTestCase):
    """Test read-only evaluation."""

    def test_evaluate_returns_payload(self):
        result = self.contract.evaluate_transaction("ReadCarAsset", "asset1")
        self.assertEqual(result, b'{"ID":"asset1"}')
        self.assertEqual(self.channel.paths(), [codec.EVALUATE_METHOD])

    def test_evaluate_result_carries_transaction_id(self):
        outcome = self.contract.evaluate("ReadCarAsset", ["asset1"])
        request, _ = self.channel.request(0)
        self.assertEqual(outcome.transaction_id, request.transaction_id)
        self.assertEqual(outcome.result, b'{"ID":"asset1"}')
        self.assertIsNone(outcome.status)

    def test_proposal_content_and_signature(self):
        self.contract.evaluate_transaction("GetCarsByColorAndOwner", "red", "person1")
        request, _ = self.channel.request(0)

        signed = request.proposed_transaction
        self.assertSignedOver(signed.proposal_bytes, signed.signature)

        proposal = protos.Proposal.FromString(signed.proposal_bytes)
        header = protos.Header.FromString(proposal.header)
        channel_header = protos.ChannelHeader.FromString(header.channel_header)
        signature_header = protos.SignatureHeader.FromString(header.signature_header)
        self.assertEqual(channel_header.type, protos.ENDORSER_TRANSACTION)
        self.assertEqual(channel_header.channel_id, "mychannel")
        self.assertGreater(channel_header.timestamp.seconds, 0)

        extension = protos.ChaincodeHeaderExtension.FromString(channel_header.extension)
        self.assertEqual(extension.chaincode_id.name, "cars")

        payload = protos.ChaincodeProposalPayload.FromString(proposal.payload)
        spec = protos.ChaincodeInvocationSpec.FromString(payload.input).chaincode_spec
        self.assertEqual(spec.chaincode_id.name, "cars")
        self.assertEqual(list(spec.input.args), [b"GetCarsByColorAndOwner", b"red", b"person1"])

        nonce = signature_header.nonce
        creator = signature_header.creator
        self.assertEqual(len(nonce), codec.NONCE_LENGTH)
        self.assertEqual(creator, codec.serialize_identity(self.identity))
        self.assertEqual(protos.SerializedIdentity.FromString(creator).mspid, "Org1MSP")
        self.assertEqual(channel_header.tx_id, hashing.sha256_hex(nonce + creator))
        self.assertEqual(request.transaction_id, channel_header.tx_id)
        self.assertEqual(request.channel_id, "mychannel")

    def test_each_proposal_has_fresh_transaction_id(self):
        a = self.contract.new_proposal("ReadCarAsset", ["asset1"])
        b = self.contract.new_proposal("ReadCarAsset", ["asset1"])
        self.assertNotEqual(a.transaction_id, b.transaction_id)

    def test_rpc_error_maps_to_evaluation_error(self):
        def fail(req):
            raise StatusRpcError(grpc.StatusCode.DEADLINE_EXCEEDED, "took too long")

        self.channel.handlers[codec.EVALUATE_METHOD] = fail
        with self.assertRaises(EvaluationError) as ctx:
            self.contract.evaluate_transaction("ReadCarAsset", "asset1")

        err = ctx.exception
        self.assertTrue(err.is_timeout())
        self.assertEqual(err.details, "took too long")
        self.assertIsNotNone(err.transaction_id)
        self.assertIsInstance(err.__cause__, StatusRpcError)

    def test_chaincode_error_status(self):
        self.channel.handlers[codec.EVALUATE_METHOD] = lambda req: protos.EvaluateResponse(
            result=protos.Response(status=500, message="the car asset1 does not exist"),
        )
        with self.assertRaises(EvaluationError) as ctx:
            self.contract.evaluate_transaction("ReadCarAsset", "asset1")
        self.assertIn("does not exist", str(ctx.exception))
        self.assertEqual(ctx.exception.details, "the car asset1 does not exist")
        self.assertFalse(ctx.exception.is_timeout())

    def test_undecodable_reply_is_evaluation_error(self):
        self.channel.handlers[codec.EVALUATE_METHOD] = lambda req: GARBAGE
        with self.assertRaises(EvaluationError) as ctx:
            self.contract.evaluate_transaction("ReadCarAsset", "asset1")
        self.assertEqual(ctx.exception.code, grpc.StatusCode.INTERNAL)

    def test_fixed_timeout_used_without_caller_timeout(self):
        self.contract.evaluate_transaction("ReadCarAsset", "asset1")
        self.assertEqual(self.channel.requests[0][2], 5)

    def test_caller_timeout_shortens(self):
        self.contract.evaluate_transaction("ReadCarAsset", "asset1", timeout=1.0)
        timeout = self.channel.requests[0][2]
        self.assertGreater(timeout, 0)
        self.assertLessEqual(timeout, 1.0)

    def test_caller_timeout_never_lengthens(self):
        self.contract.evaluate_transaction("ReadCarAsset", "asset1", timeout=300)
        self.assertEqual(self.channel.requests[0][2], 5)


class TestSubmit(GatewayTestCase):
    """Test the endorse / submit / commit status flow."""

    def test_submit_flow(self):
        result = self.contract.submit_transaction("TransferCarAsset", "asset1", "Alice", "false")

        self.assertEqual(result, b"endorsed")
        self.assertEqual(self.channel.paths(), [
            codec.ENDORSE_METHOD,
            codec.SUBMIT_METHOD,
            codec.COMMIT_STATUS_METHOD,
        ])
        endorse, _ = self.channel.request(0)
        submit, _ = self.channel.request(1)
        self.assertEqual(endorse.transaction_id, submit.transaction_id)

    def test_submit_result_carries_transaction_id_and_status(self):
        outcome = self.contract.submit("RepairCar", ["asset1"])
        endorse, _ = self.channel.request(0)
        self.assertEqual(outcome.transaction_id, endorse.transaction_id)
        self.assertEqual(outcome.status.code, "VALID")
        self.assertEqual(outcome.status.block_number, 7)
        self.assertTrue(outcome.status.successful)

    def test_submitted_envelope_is_signed(self):
        self.contract.submit_transaction("RepairCar", "asset1")
        request, timeout = self.channel.request(1)

        envelope = request.prepared_transaction
        self.assertEqual(envelope.payload, prepared_envelope(b"endorsed").payload)
        self.assertSignedOver(envelope.payload, envelope.signature)
        self.assertEqual(timeout, 5)

    def test_commit_status_request_is_signed(self):
        self.contract.submit_transaction("RepairCar", "asset1")
        request, timeout = self.channel.request(2)

        self.assertSignedOver(request.request, request.signature)
        status_request = protos.CommitStatusRequest.FromString(request.request)
        self.assertEqual(status_request.channel_id, "mychannel")
        self.assertEqual(status_request.identity, codec.serialize_identity(self.identity))
        self.assertEqual(timeout, 60)

    def test_invalid_commit_raises_commit_error(self):
        self.channel.handlers[codec.COMMIT_STATUS_METHOD] = lambda req: protos.CommitStatusResponse(
            result=11, block_number=9,
        )
        with self.assertRaises(CommitError) as ctx:
            self.contract.submit_transaction("ChangeCarColor", "asset1", "blue")
        self.assertEqual(ctx.exception.status, "MVCC_READ_CONFLICT")
        self.assertEqual(ctx.exception.block_number, 9)

    def test_unknown_commit_code_raises_commit_error(self):
        self.channel.handlers[codec.COMMIT_STATUS_METHOD] = lambda req: protos.CommitStatusResponse(result=9999)
        with self.assertRaises(CommitError) as ctx:
            self.contract.submit_transaction("RepairCar", "asset1")
        self.assertEqual(ctx.exception.status, "9999")

    def test_endorse_failure_stops_flow(self):
        def fail(req):
            raise StatusRpcError(grpc.StatusCode.ABORTED, "endorsement mismatch")

        self.channel.handlers[codec.ENDORSE_METHOD] = fail
        with self.assertRaises(EndorseError) as ctx:
            self.contract.submit_transaction("RepairCar", "asset1")
        self.assertEqual(ctx.exception.code, grpc.StatusCode.ABORTED)
        self.assertEqual(self.channel.paths(), [codec.ENDORSE_METHOD])

    def test_endorsed_chaincode_error(self):
        self.channel.handlers[codec.ENDORSE_METHOD] = lambda req: protos.EndorseResponse(
            prepared_transaction=prepared_envelope(b"", status=500, message="car asset1 is malfunctioned"),
        )
        with self.assertRaises(EndorseError) as ctx:
            self.contract.submit_transaction("TransferCarAsset", "asset1", "Alice", "false")
        self.assertEqual(ctx.exception.details, "car asset1 is malfunctioned")
        self.assertEqual(self.channel.paths(), [codec.ENDORSE_METHOD])

    def test_submit_failure(self):
        def fail(req):
            raise StatusRpcError(grpc.StatusCode.UNAVAILABLE)

        self.channel.handlers[codec.SUBMIT_METHOD] = fail
        with self.assertRaises(SubmitError):
            self.contract.submit_transaction("InitLedger")

    def test_endorse_without_prepared_transaction(self):
        self.channel.handlers[codec.ENDORSE_METHOD] = lambda req: protos.EndorseResponse()
        with self.assertRaises(EndorseError):
            self.contract.submit_transaction("InitLedger")
        self.assertEqual(self.channel.paths(), [codec.ENDORSE_METHOD])

    def test_undecodable_prepared_transaction(self):
        self.channel.handlers[codec.ENDORSE_METHOD] = lambda req: protos.EndorseResponse(
            prepared_transaction=protos.Envelope(payload=GARBAGE),
        )
        with self.assertRaises(EndorseError) as ctx:
            self.contract.submit_transaction("RepairCar", "asset1")
        self.assertIsInstance(ctx.exception.__cause__, DecodeError)
        self.assertIsNotNone(ctx.exception.transaction_id)

    def test_prepared_transaction_without_actions(self):
        empty = protos.Payload(data=protos.Transaction().SerializeToString())
        self.channel.handlers[codec.ENDORSE_METHOD] = lambda req: protos.EndorseResponse(
            prepared_transaction=protos.Envelope(payload=empty.SerializeToString()),
        )
        with self.assertRaises(EndorseError):
            self.contract.submit_transaction("RepairCar", "asset1")

    def test_undecodable_endorse_reply(self):
        self.channel.handlers[codec.ENDORSE_METHOD] = lambda req: GARBAGE
        with self.assertRaises(EndorseError) as ctx:
            self.contract.submit_transaction("RepairCar", "asset1")
        self.assertEqual(ctx.exception.code, grpc.StatusCode.INTERNAL)

    def test_expired_deadline_makes_no_call(self):
        proposal = self.contract.new_proposal("RepairCar", ["asset1"])
        with self.assertRaises(EndorseError) as ctx:
            proposal.endorse(deadline=time.monotonic() - 1)
        self.assertTrue(ctx.exception.is_timeout())
        self.assertEqual(self.channel.requests, [])


class TestRoutesOverGateway(GatewayTestCase):
    """Test HTTP status codes with a real gateway session behind the routes."""

    def setUp(self):
        super().setUp()
        main.app.dependency_overrides[main.get_dispatcher] = lambda: OperationDispatcher(self.contract)
        self.client = TestClient(main.app)

    def tearDown(self):
        main.app.dependency_overrides.clear()

    def test_bad_endorse_reply_is_502(self):
        self.channel.handlers[codec.ENDORSE_METHOD] = lambda req: protos.EndorseResponse(
            prepared_transaction=protos.Envelope(payload=GARBAGE),
        )
        r = self.client.post("/repairCar", json={"carID": "asset1"})
        self.assertEqual(r.status_code, 502)
        body = r.json()
        self.assertEqual(body["error"]["type"], "EndorseError")
        self.assertIsNotNone(body["transaction_id"])

    def test_committed_transaction_reports_id(self):
        r = self.client.post("/repairCar", json={"carID": "asset1"})
        self.assertEqual(r.status_code, 200)
        endorse, _ = self.channel.request(0)
        self.assertEqual(r.json()["transaction_id"], endorse.transaction_id)


class TestGatewayLifecycle(GatewayTestCase):
    """Test closing the gateway."""

    def test_closed_gateway_rejects_calls(self):
        self.gateway.close()
        with self.assertRaises(GatewayError):
            self.contract.evaluate_transaction("ReadCarAsset", "asset1")
        self.assertEqual(self.channel.requests, [])

    def test_close_is_idempotent_and_keeps_channel(self):
        with self.gateway:
            pass
        self.gateway.close()
        self.assertTrue(self.gateway.closed)
        self.assertFalse(self.channel.closed)

    def test_empty_names_rejected(self):
        with self.assertRaises(ValueError):
            self.gateway.get_network("")
        with self.assertRaises(ValueError):
            self.gateway.get_network("mychannel").get_contract("")

    def test_connect_requires_identity(self):
        with self.assertRaises(ValueError):
            connect(None, new_private_key_sign(self.key), self.channel)


if __name__ == "__main__":
    unittest.main()
