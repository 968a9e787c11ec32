"""
Operation dispatcher for the cars gateway app.

Maps each business operation to one of two invocation kinds and forwards
it to the contract:

- evaluate: read-only query against current ledger state, no ordering;
  the result payload is pretty-printed for the caller
- submit: state-changing transaction, endorsed, ordered and committed;
  success carries no result

The kind of an operation is fixed by this table, never by request content.
Remote failures are logged and returned as a failed DispatchResult; they
never propagate out of the dispatcher.
Arguments that cannot be encoded are rejected before any call is made.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

import grpc

from gatewayclient import EvaluationError, GatewayError, InvocationError, SubmissionError

from .errors import InvalidArgument, MalformedPayloadError
from .formatting import format_json
from .logging_config import audit_log
from .models import ErrorDetail, OperationResult, TransactionBody

logger = logging.getLogger(__name__)


class OperationKind(str, Enum):
    """Invocation kind of an operation."""
    EVALUATE = "evaluate"
    SUBMIT = "submit"


class OperationNotImplemented(Exception):
    """Raised for operations that are routed but have no business logic yet."""


def encode_bool_flag(value: str) -> str:
    """
    Encode the accept-malfunction flag.

    Only the exact text "n" means false. Everything else, including "",
    "N", "no" and "false", means true.
    """
    return "false" if value == "n" else "true"


def encode_price(value: str) -> str:
    """
    Encode a repair price with six decimal places.

    Raises:
        ValueError: If the value is not a finite number
    """
    price = float(value)
    if not math.isfinite(price):
        raise ValueError("not a finite number")
    return "%f" % price


@dataclass(frozen=True)
class TransactionRequest:
    """A single contract call: function name plus ordered string arguments."""
    operation: str
    args: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Operation:
    """
    A supported business operation.

    Attributes:
        name: Contract function name
        kind: evaluate or submit
        fields: Request body fields forwarded as arguments, in order
        encoders: Per-field argument encoders; plain str otherwise
        enabled: Whether the operation is forwarded to the ledger
    """
    name: str
    kind: OperationKind
    fields: Tuple[str, ...] = ()
    encoders: Dict[str, Callable[[str], str]] = field(default_factory=dict)
    enabled: bool = True

    def build_request(self, body: TransactionBody) -> TransactionRequest:
        """
        Raises:
            InvalidArgument: If a field value cannot be encoded
        """
        args = []
        for f in self.fields:
            value = getattr(body, f)
            try:
                args.append(self.encoders.get(f, str)(value))
            except ValueError as e:
                raise InvalidArgument(f, value, str(e)) from e
        return TransactionRequest(operation=self.name, args=tuple(args))


OPERATIONS: Dict[str, Operation] = {
    op.name: op
    for op in (
        Operation("InitLedger", OperationKind.SUBMIT),
        Operation("ReadPersonAsset", OperationKind.EVALUATE, ("personID",)),
        Operation("ReadCarAsset", OperationKind.EVALUATE, ("carID",)),
        Operation("GetCarsByColor", OperationKind.EVALUATE, ("color",)),
        Operation("GetCarsByColorAndOwner", OperationKind.EVALUATE, ("color", "ownerID")),
        Operation(
            "TransferCarAsset",
            OperationKind.SUBMIT,
            ("carID", "newOwnerID", "acceptMalfunctionedStr"),
            encoders={"acceptMalfunctionedStr": encode_bool_flag},
        ),
        Operation("ChangeCarColor", OperationKind.SUBMIT, ("carID", "color")),
        Operation("RepairCar", OperationKind.SUBMIT, ("carID",)),
        # TODO: enable once the chaincode's AddCarMalfunction signature is agreed
        Operation(
            "AddCarMalfunction",
            OperationKind.SUBMIT,
            ("carID", "description", "repairPrice"),
            encoders={"repairPrice": encode_price},
            enabled=False,
        ),
    )
}

# HTTP route -> operation name
ROUTES: Dict[str, str] = {
    "/initLedger": "InitLedger",
    "/readPersonAsset": "ReadPersonAsset",
    "/readCarAsset": "ReadCarAsset",
    "/getCarsByColor": "GetCarsByColor",
    "/getCarsByColorAndOwner": "GetCarsByColorAndOwner",
    "/transferCarAsset": "TransferCarAsset",
    "/addCarMalfunction": "AddCarMalfunction",
    "/changeCarColor": "ChangeCarColor",
    "/repairCar": "RepairCar",
}


@dataclass
class DispatchResult:
    """Outcome of one dispatched operation."""
    operation: str
    kind: OperationKind
    ok: bool
    result: Optional[Any] = None
    error: Optional[Exception] = None
    transaction_id: Optional[str] = None

    @property
    def not_implemented(self) -> bool:
        return isinstance(self.error, OperationNotImplemented)

    @property
    def invalid_argument(self) -> bool:
        return isinstance(self.error, InvalidArgument)

    @property
    def timed_out(self) -> bool:
        return isinstance(self.error, InvocationError) and self.error.is_timeout()

    def to_model(self) -> OperationResult:
        detail = None
        if self.error is not None:
            code = getattr(self.error, "code", None)
            detail = ErrorDetail(
                type=type(self.error).__name__,
                message=str(self.error),
                grpc_status=code.name if isinstance(code, grpc.StatusCode) else None,
            )
        return OperationResult(
            operation=self.operation,
            kind=self.kind.value,
            ok=self.ok,
            result=self.result,
            transaction_id=self.transaction_id,
            error=detail,
        )


class OperationDispatcher:
    """
    Forwards operations to a contract handle.

    The contract is shared read-only state; one dispatcher serves all
    concurrent requests.
    """

    def __init__(self, contract, audit=audit_log):
        self._contract = contract
        self._audit = audit

    def dispatch(self, name: str, body: TransactionBody, timeout: Optional[float] = None) -> DispatchResult:
        """
        Run the named operation with arguments taken from the request body.

        Args:
            name: Operation name from OPERATIONS
            body: Decoded request record
            timeout: Optional caller deadline in seconds

        Returns:
            DispatchResult; never raises for remote failures
        """
        op = OPERATIONS[name]
        if not op.enabled:
            self._audit.operation_not_implemented(op.name)
            return DispatchResult(
                op.name, op.kind, ok=False,
                error=OperationNotImplemented(f"{op.name} is not implemented"),
            )

        try:
            request = op.build_request(body)
        except InvalidArgument as e:
            logger.warning("Rejected %s: %s", op.name, e)
            return DispatchResult(op.name, op.kind, ok=False, error=e)

        if op.kind is OperationKind.EVALUATE:
            return self.evaluate(request, timeout=timeout)
        return self.submit(request, timeout=timeout)

    def evaluate(self, request: TransactionRequest, timeout: Optional[float] = None) -> DispatchResult:
        logger.info("Evaluate Transaction: %s", request.operation)
        try:
            outcome = self._contract.evaluate(request.operation, request.args, timeout=timeout)
        except GatewayError as e:
            err = e if isinstance(e, EvaluationError) else _wrap(EvaluationError, e)
            self._audit.transaction_failed(request.operation, OperationKind.EVALUATE.value, err)
            return _failed(request, OperationKind.EVALUATE, err)

        payload = outcome.result
        try:
            formatted = format_json(payload)
        except MalformedPayloadError as e:
            self._audit.transaction_failed(request.operation, OperationKind.EVALUATE.value, e)
            return DispatchResult(
                request.operation, OperationKind.EVALUATE, ok=False,
                result=payload.decode("utf-8", errors="replace"), error=e,
                transaction_id=outcome.transaction_id,
            )

        self._audit.transaction_evaluated(
            request.operation, len(request.args), len(payload), transaction_id=outcome.transaction_id
        )
        logger.debug("*** Result:%s", formatted)
        return DispatchResult(
            request.operation, OperationKind.EVALUATE, ok=True,
            result=formatted, transaction_id=outcome.transaction_id,
        )

    def submit(self, request: TransactionRequest, timeout: Optional[float] = None) -> DispatchResult:
        logger.info("Submit Transaction: %s", request.operation)
        try:
            outcome = self._contract.submit(request.operation, request.args, timeout=timeout)
        except GatewayError as e:
            err = e if isinstance(e, SubmissionError) else _wrap(SubmissionError, e)
            self._audit.transaction_failed(request.operation, OperationKind.SUBMIT.value, err)
            return _failed(request, OperationKind.SUBMIT, err)

        self._audit.transaction_submitted(
            request.operation, len(request.args), transaction_id=outcome.transaction_id
        )
        return DispatchResult(
            request.operation, OperationKind.SUBMIT, ok=True, transaction_id=outcome.transaction_id
        )


def _failed(request: TransactionRequest, kind: OperationKind, err: InvocationError) -> DispatchResult:
    return DispatchResult(
        request.operation, kind, ok=False, error=err,
        transaction_id=getattr(err, "transaction_id", None),
    )


def _wrap(error_cls, cause: Exception) -> InvocationError:
    err = error_cls(
        f"{error_cls.stage} failed: {cause}",
        transaction_id=getattr(cause, "transaction_id", None),
        code=getattr(cause, "code", None),
    )
    err.__cause__ = cause
    return err
