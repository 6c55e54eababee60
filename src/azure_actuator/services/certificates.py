"""Cluster certificate authority material.

The control plane needs three certificate authorities (cluster, etcd and
front proxy) plus a service-account signing key pair. They are generated
once and stored in the cluster provider spec so every control plane
machine bootstraps from the same material.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import yaml
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from ..models import KeyPair

if TYPE_CHECKING:
    from ..scope import Scope

logger = logging.getLogger(__name__)

RSA_KEY_SIZE = 2048
CA_VALIDITY = timedelta(days=3650)
CLIENT_CERT_VALIDITY = timedelta(days=365)
# Tolerate clock skew between the actuator and fresh machines
CLOCK_SKEW = timedelta(minutes=5)

CLUSTER_CA_NAME = "kubernetes"
ETCD_CA_NAME = "etcd"
FRONT_PROXY_CA_NAME = "front-proxy"

ADMIN_USER = "kubernetes-admin"
ADMIN_GROUP = "system:masters"
API_SERVER_PORT = 6443


def new_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=RSA_KEY_SIZE)


def _private_key_pem(key: rsa.RSAPrivateKey) -> bytes:
    # kubeadm reads PKCS#1 ("RSA PRIVATE KEY") without a passphrase
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def new_ca(common_name: str) -> KeyPair:
    """Generate a self-signed certificate authority.

    Args:
        common_name: Subject CN of the CA.
    """
    key = new_private_key()
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(UTC)

    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - CLOCK_SKEW)
        .not_valid_after(now + CA_VALIDITY)
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .sign(key, hashes.SHA256())
    )

    return KeyPair.from_pem(cert.public_bytes(serialization.Encoding.PEM), _private_key_pem(key))


def new_key_pair() -> KeyPair:
    """Generate an RSA key pair; `cert` holds the public key in PEM form."""
    key = new_private_key()
    public_pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return KeyPair.from_pem(public_pem, _private_key_pem(key))


def new_signed_client_cert(
    ca: KeyPair,
    common_name: str,
    organizations: list[str],
) -> KeyPair:
    """Issue a client certificate signed by `ca`."""
    ca_cert = x509.load_pem_x509_certificate(ca.cert_pem())
    ca_key = serialization.load_pem_private_key(ca.key_pem(), password=None)

    key = new_private_key()
    attributes = [x509.NameAttribute(NameOID.ORGANIZATION_NAME, org) for org in organizations]
    attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name))
    now = datetime.now(UTC)

    cert = (
        x509.CertificateBuilder()
        .subject_name(x509.Name(attributes))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - CLOCK_SKEW)
        .not_valid_after(now + CLIENT_CERT_VALIDITY)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH]),
            critical=False,
        )
        .sign(ca_key, hashes.SHA256())
    )

    return KeyPair.from_pem(cert.public_bytes(serialization.Encoding.PEM), _private_key_pem(key))


def discovery_hash(cert_pem: bytes) -> str:
    """kubeadm discovery token CA cert hash: sha256 of the CA's SubjectPublicKeyInfo."""
    cert = x509.load_pem_x509_certificate(cert_pem)
    spki = cert.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return "sha256:" + hashlib.sha256(spki).hexdigest()


def new_kubeconfig(cluster_name: str, server: str, ca: KeyPair) -> dict[str, Any]:
    """Build an admin kubeconfig for `server` authenticated by a CA-signed client cert."""
    client = new_signed_client_cert(ca, ADMIN_USER, [ADMIN_GROUP])
    user_name = f"{ADMIN_USER}@{cluster_name}"
    context_name = f"{ADMIN_USER}@{cluster_name}"

    return {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [
            {
                "name": cluster_name,
                "cluster": {
                    "server": server,
                    "certificate-authority-data": ca.cert,
                },
            }
        ],
        "users": [
            {
                "name": user_name,
                "user": {
                    "client-certificate-data": client.cert,
                    "client-key-data": client.key,
                },
            }
        ],
        "contexts": [
            {
                "name": context_name,
                "context": {"cluster": cluster_name, "user": user_name},
            }
        ],
        "current-context": context_name,
    }


def api_server_url(address: str) -> str:
    return f"https://{address}:{API_SERVER_PORT}"


class CertificatesService:
    """Generates and stores cluster CA material in the provider spec."""

    def __init__(self, scope: Scope) -> None:
        self._scope = scope

    def reconcile_certificates(self) -> None:
        """Ensure all CA key pairs, the SA key pair and discovery hashes exist.

        Existing material is never rotated; a key pair is generated only when
        its certificate or key is missing.
        """
        spec = self._scope.cluster_config
        generated: list[str] = []

        if not spec.ca_key_pair.has_cert_and_key():
            spec.ca_key_pair = new_ca(CLUSTER_CA_NAME)
            generated.append("ca")

        if not spec.etcd_ca_key_pair.has_cert_and_key():
            spec.etcd_ca_key_pair = new_ca(ETCD_CA_NAME)
            generated.append("etcd-ca")

        if not spec.front_proxy_ca_key_pair.has_cert_and_key():
            spec.front_proxy_ca_key_pair = new_ca(FRONT_PROXY_CA_NAME)
            generated.append("front-proxy-ca")

        if not spec.sa_key_pair.has_cert_and_key():
            spec.sa_key_pair = new_key_pair()
            generated.append("sa")

        spec.discovery_hashes = [discovery_hash(spec.ca_key_pair.cert_pem())]

        # The admin kubeconfig needs the API endpoint, known once the load balancer exists
        address = self._scope.network.api_server_ip.dns_name
        if address and ("ca" in generated or not spec.admin_kubeconfig):
            kubeconfig = new_kubeconfig(self._scope.name, api_server_url(address), spec.ca_key_pair)
            spec.admin_kubeconfig = yaml.safe_dump(kubeconfig, default_flow_style=False)
            generated.append("admin-kubeconfig")

        if generated:
            logger.info(
                "Generated cluster certificate material",
                extra={"cluster": self._scope.name, "generated": generated},
            )
