import json
import logging
import sys
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from gatewayclient import GatewayError

from .config import (
    CONNECT_TIMEOUT,
    HTTP_HOST,
    HTTP_PORT,
    LOG_FILE,
    LOG_JSON,
    LOG_LEVEL,
    ORG_SELECTION,
    call_timeouts,
    load_app_config,
    prompt_org_selection,
    strict_failure_status,
    validate_org_paths,
)
from .dispatcher import OPERATIONS, ROUTES, DispatchResult, OperationDispatcher
from .errors import ConfigLoadError
from .logging_config import configure_logging, set_request_id
from .models import HealthStatus, OperationResult, TransactionBody
from .session import LedgerSession, open_session

logger = logging.getLogger(__name__)

app = FastAPI(title="Cars Ledger Gateway App")

SESSION: Optional[LedgerSession] = None


@app.middleware("http")
async def _request_id(request: Request, call_next):
    rid = set_request_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    return response


@app.on_event("startup")
def _startup():
    global SESSION
    if SESSION is not None:
        return
    app_config = load_app_config()
    SESSION = open_session(
        app_config,
        ORG_SELECTION,
        timeouts=call_timeouts(),
        connect_timeout=CONNECT_TIMEOUT,
    )


@app.on_event("shutdown")
def _shutdown():
    global SESSION
    session, SESSION = SESSION, None
    if session is not None:
        session.close()


async def decode_body(request: Request) -> TransactionBody:
    raw = await request.body()
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise HTTPException(400, f"MALFORMED_JSON: {e}")
    if not isinstance(data, dict):
        raise HTTPException(400, "MALFORMED_JSON: body must be a JSON object")
    try:
        return TransactionBody.model_validate(data)
    except ValidationError as e:
        raise HTTPException(400, f"MALFORMED_JSON: {e.error_count()} field(s) of the wrong type")


def request_timeout(x_request_timeout: Optional[str] = Header(None)) -> Optional[float]:
    if x_request_timeout is None:
        return None
    try:
        timeout = float(x_request_timeout)
    except ValueError:
        raise HTTPException(400, "INVALID_REQUEST_TIMEOUT")
    if timeout <= 0:
        raise HTTPException(400, "INVALID_REQUEST_TIMEOUT")
    return timeout


def get_dispatcher() -> OperationDispatcher:
    if SESSION is None:
        raise HTTPException(503, "GATEWAY_NOT_CONNECTED")
    return SESSION.dispatcher


def response_status(result: DispatchResult) -> int:
    if result.ok:
        return 200
    if result.not_implemented:
        return 501
    if result.invalid_argument:
        return 400
    if not strict_failure_status():
        return 200
    return 504 if result.timed_out else 502


def _route(operation: str):
    def handler(
        body: TransactionBody = Depends(decode_body),
        timeout: Optional[float] = Depends(request_timeout),
        dispatcher: OperationDispatcher = Depends(get_dispatcher),
    ):
        result = dispatcher.dispatch(operation, body, timeout=timeout)
        return JSONResponse(status_code=response_status(result), content=result.to_model().model_dump())

    handler.__name__ = f"route_{operation}"
    return handler


for _path, _operation in ROUTES.items():
    app.add_api_route(
        _path,
        _route(_operation),
        methods=["POST"],
        response_model=OperationResult,
        summary=f"{OPERATIONS[_operation].kind.value} {_operation}",
    )


@app.get("/health")
def health():
    if SESSION is None:
        return JSONResponse(status_code=503, content=HealthStatus(status="DISCONNECTED").model_dump())
    return HealthStatus(
        status="OK",
        org=SESSION.org,
        msp_id=SESSION.org_config.msp_id,
        channel=SESSION.channel_name,
        chaincode=SESSION.chaincode_name,
        checks=validate_org_paths(SESSION.org_config),
    )


def main() -> int:
    global SESSION
    configure_logging(LOG_LEVEL, json_format=LOG_JSON, log_file=LOG_FILE)
    logger.info("============ cars gateway app starts ============")

    try:
        app_config = load_app_config()
        choice = ORG_SELECTION if ORG_SELECTION is not None else prompt_org_selection(app_config)
        SESSION = open_session(
            app_config,
            choice,
            timeouts=call_timeouts(),
            connect_timeout=CONNECT_TIMEOUT,
        )
    except (ConfigLoadError, GatewayError) as e:
        logger.error("Startup failed: %s", e)
        return 1

    try:
        uvicorn.run(app, host=HTTP_HOST, port=HTTP_PORT, log_config=None)
    finally:
        _shutdown()
    logger.info("============ cars gateway app ends ============")
    return 0


if __name__ == "__main__":
    sys.exit(main())
