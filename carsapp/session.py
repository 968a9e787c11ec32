"""
Ledger session setup for the cars gateway app.

Startup is strictly sequential: organization selection, credential
loading, secure channel, gateway session. Any failure aborts startup and
releases whatever was already acquired.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import grpc
from cryptography.hazmat.primitives.asymmetric import ed25519

from gatewayclient import (
    CallTimeouts,
    Contract,
    Gateway,
    connect,
    load_certificate,
    load_private_key,
    new_grpc_connection,
    new_private_key_sign,
    new_x509_identity,
)
from gatewayclient.hashing import none as no_hash, sha256

from .config import AppConfig, OrgConfig, resolve_org_key, select_org
from .dispatcher import OperationDispatcher
from .logging_config import audit_log

logger = logging.getLogger(__name__)


@dataclass
class LedgerSession:
    """Everything held for the lifetime of the process."""
    org: str
    org_config: OrgConfig
    channel_name: str
    chaincode_name: str
    connection: grpc.Channel
    gateway: Gateway
    contract: Contract
    dispatcher: OperationDispatcher

    def close(self) -> None:
        """Close the gateway session, then the gRPC channel."""
        try:
            self.gateway.close()
        finally:
            self.connection.close()
            audit_log.gateway_closed(self.org_config.peer_endpoint)


def open_session(
    app_config: AppConfig,
    choice: Optional[str],
    timeouts: Optional[CallTimeouts] = None,
    connect_timeout: Optional[float] = None,
) -> LedgerSession:
    """
    Build the ledger session for the selected organization.

    Raises:
        ConfigLoadError: If the organization is not configured
        FileReadError / CertificateParseError / PrivateKeyParseError: Bad credentials
        GatewayConnectionError: If the gateway peer is unreachable
    """
    org_key = resolve_org_key(choice)
    org = select_org(app_config, choice)
    audit_log.org_selected(org_key, org.msp_id)

    logger.info("Loading credentials for %s from %s", org.msp_id, org.cert_path)
    identity = new_x509_identity(org.msp_id, load_certificate(org.cert_path))
    private_key = load_private_key(org.key_path)
    sign = new_private_key_sign(private_key)
    hash_fn = no_hash if isinstance(private_key, ed25519.Ed25519PrivateKey) else sha256

    connection = new_grpc_connection(
        org.tls_cert_path, org.gateway_peer, org.peer_endpoint, connect_timeout=connect_timeout
    )
    try:
        gateway = connect(identity, sign, connection, hash=hash_fn, timeouts=timeouts)
    except Exception:
        connection.close()
        raise

    contract = gateway.get_network(app_config.channel_name).get_contract(app_config.chaincode_name)
    audit_log.gateway_connected(org.peer_endpoint, app_config.channel_name, app_config.chaincode_name)

    return LedgerSession(
        org=org_key,
        org_config=org,
        channel_name=app_config.channel_name,
        chaincode_name=app_config.chaincode_name,
        connection=connection,
        gateway=gateway,
        contract=contract,
        dispatcher=OperationDispatcher(contract),
    )
