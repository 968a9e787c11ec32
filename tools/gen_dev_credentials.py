"""
Generate local development credentials and an app_config.json.

For each organization writes:
    dev/<org>/tls/ca.crt             self-signed TLS root
    dev/<org>/msp/signcerts/cert.pem client certificate issued by the root
    dev/<org>/msp/keystore/priv_sk   client private key (PKCS#8 PEM)

Usage: python tools/gen_dev_credentials.py [output_dir]
"""

import datetime
import json
import os
import sys

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519
from cryptography.x509.oid import NameOID

ORGS = ["org1", "org2", "org3", "org4"]


def _name(common_name: str, org: str) -> x509.Name:
    return x509.Name([
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, f"{org}.example.com"),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])


def _certificate(subject, issuer, public_key, signing_key, is_ca, sans=()):
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=is_ca, path_length=None), critical=True)
    )
    if sans:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(s) for s in sans]), critical=False
        )
    algorithm = None if isinstance(signing_key, ed25519.Ed25519PrivateKey) else hashes.SHA256()
    return builder.sign(signing_key, algorithm)


def write_org_credentials(base_dir: str, org: str, key_type: str = "ec") -> dict:
    """Write one organization's credentials and return its config entry."""
    org_dir = os.path.join(base_dir, org)
    tls_dir = os.path.join(org_dir, "tls")
    signcerts_dir = os.path.join(org_dir, "msp", "signcerts")
    keystore_dir = os.path.join(org_dir, "msp", "keystore")
    for d in (tls_dir, signcerts_dir, keystore_dir):
        os.makedirs(d, exist_ok=True)

    peer = f"peer0.{org}.example.com"
    ca_key = ec.generate_private_key(ec.SECP256R1())
    ca_name = _name(f"ca.{org}.example.com", org)
    ca_cert = _certificate(ca_name, ca_name, ca_key.public_key(), ca_key, True, sans=(peer,))

    if key_type == "ed25519":
        user_key = ed25519.Ed25519PrivateKey.generate()
    else:
        user_key = ec.generate_private_key(ec.SECP256R1())
    user_cert = _certificate(_name(f"User1@{org}.example.com", org), ca_name, user_key.public_key(), ca_key, False)

    tls_cert_path = os.path.join(tls_dir, "ca.crt")
    cert_path = os.path.join(signcerts_dir, "cert.pem")
    with open(tls_cert_path, "wb") as f:
        f.write(ca_cert.public_bytes(serialization.Encoding.PEM))
    with open(cert_path, "wb") as f:
        f.write(user_cert.public_bytes(serialization.Encoding.PEM))
    with open(os.path.join(keystore_dir, "priv_sk"), "wb") as f:
        f.write(user_key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        ))

    return {
        "mspID": f"{org.capitalize()}MSP",
        "certPath": cert_path,
        "keyPath": keystore_dir,
        "tlsCertPath": tls_cert_path,
        "peerEndpoint": f"localhost:{7051 + 2000 * (ORGS.index(org) if org in ORGS else 0)}",
        "gatewayPeer": peer,
    }


def write_app_config(base_dir: str, orgs=ORGS, channel: str = "mychannel", chaincode: str = "cars") -> str:
    config = {
        "orgs": {org: write_org_credentials(base_dir, org) for org in orgs},
        "channelName": channel,
        "chaincodeName": chaincode,
    }
    path = os.path.join(base_dir, "app_config.json")
    with open(path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)
    return path


if __name__ == "__main__":
    out_dir = sys.argv[1] if len(sys.argv) > 1 else "dev"
    os.makedirs(out_dir, exist_ok=True)
    print("Generated local credentials + config:", write_app_config(out_dir))
