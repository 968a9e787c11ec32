"""
Secure Channel

Opens the TLS-secured gRPC channel to the gateway peer. The channel trusts
exactly one root certificate and expects the peer to present the given
server identity. One channel is shared by every gateway session created
for the endpoint.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

import grpc
from cryptography.hazmat.primitives import serialization

from .errors import GatewayConnectionError
from .identity import load_certificate

logger = logging.getLogger(__name__)


def channel_options(gateway_peer: str) -> List[Tuple[str, str]]:
    """gRPC options that pin the expected server identity."""
    return [
        ("grpc.ssl_target_name_override", gateway_peer),
        ("grpc.default_authority", gateway_peer),
    ]


def new_grpc_connection(
    tls_cert_path: str,
    gateway_peer: str,
    peer_endpoint: str,
    connect_timeout: Optional[float] = None,
) -> grpc.Channel:
    """
    Create a gRPC channel to the gateway peer.

    Args:
        tls_cert_path: PEM file of the TLS root certificate to trust
        gateway_peer: Server name expected in the peer's TLS certificate
        peer_endpoint: host:port of the gateway peer
        connect_timeout: When set, block until the channel is ready or
            the timeout (seconds) elapses

    Returns:
        An open grpc.Channel

    Raises:
        FileReadError / CertificateParseError: If the root certificate is unusable
        GatewayConnectionError: If the channel cannot be established
    """
    certificate = load_certificate(tls_cert_path)
    root_pem = certificate.public_bytes(serialization.Encoding.PEM)
    credentials = grpc.ssl_channel_credentials(root_certificates=root_pem)

    try:
        channel = grpc.secure_channel(peer_endpoint, credentials, options=channel_options(gateway_peer))
    except (ValueError, TypeError) as e:
        raise GatewayConnectionError(peer_endpoint, f"failed to create gRPC connection: {e}") from e

    if connect_timeout is not None:
        try:
            grpc.channel_ready_future(channel).result(timeout=connect_timeout)
        except grpc.FutureTimeoutError as e:
            channel.close()
            raise GatewayConnectionError(
                peer_endpoint, f"gRPC connection not ready after {connect_timeout}s"
            ) from e

    logger.info("gRPC connection opened to %s (server name %s)", peer_endpoint, gateway_peer)
    return channel


@contextmanager
def managed_connection(
    tls_cert_path: str,
    gateway_peer: str,
    peer_endpoint: str,
    connect_timeout: Optional[float] = None,
) -> Iterator[grpc.Channel]:
    """Open a gRPC channel and close it on every exit path."""
    channel = new_grpc_connection(tls_cert_path, gateway_peer, peer_endpoint, connect_timeout)
    try:
        yield channel
    finally:
        channel.close()
        logger.info("gRPC connection to %s closed", peer_endpoint)
