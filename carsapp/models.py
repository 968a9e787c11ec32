from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator


class TransactionBody(BaseModel):
    """Flat request record shared by every route; each route reads only its own fields."""

    model_config = ConfigDict(extra="ignore")

    personID: str = ""
    carID: str = ""
    color: str = ""
    ownerID: str = ""
    newOwnerID: str = ""
    acceptMalfunctionedStr: str = ""
    description: str = ""
    repairPrice: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _null_is_empty(cls, v):
        return "" if v is None else v


class ErrorDetail(BaseModel):
    type: str
    message: str
    grpc_status: Optional[str] = None


class OperationResult(BaseModel):
    operation: str
    kind: str
    ok: bool
    result: Optional[Any] = None
    transaction_id: Optional[str] = None
    error: Optional[ErrorDetail] = None


class HealthStatus(BaseModel):
    status: str
    org: Optional[str] = None
    msp_id: Optional[str] = None
    channel: Optional[str] = None
    chaincode: Optional[str] = None
    checks: Dict[str, bool] = {}
