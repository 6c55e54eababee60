"""Tests for cluster certificate generation."""

from __future__ import annotations

from collections.abc import Generator

import pytest
import yaml
from azure_mock import MockAzureContext
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from azure_actuator.config import Config
from azure_actuator.models import Cluster, KeyPair
from azure_actuator.scope import Scope, ScopeParams, new_scope
from azure_actuator.services.certificates import (
    ADMIN_GROUP,
    ADMIN_USER,
    CertificatesService,
    api_server_url,
    discovery_hash,
    new_ca,
    new_key_pair,
    new_kubeconfig,
    new_signed_client_cert,
)

API_DNS_NAME = "test-cluster-api.westeurope.cloudapp.azure.com"


@pytest.fixture(scope="module")
def ca() -> KeyPair:
    return new_ca("kubernetes")


@pytest.fixture
def scope(config: Config, cluster: Cluster) -> Generator[Scope, None, None]:
    with MockAzureContext():
        yield new_scope(ScopeParams(cluster=cluster, config=config))


class TestCertificateAuthority:
    """Tests for CA and key pair generation."""

    def test_new_ca_is_self_signed(self, ca: KeyPair) -> None:
        cert = x509.load_pem_x509_certificate(ca.cert_pem())

        assert cert.subject == cert.issuer
        assert cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value == "kubernetes"
        assert cert.extensions.get_extension_for_class(x509.BasicConstraints).value.ca is True

    def test_new_ca_key_matches_cert(self, ca: KeyPair) -> None:
        cert = x509.load_pem_x509_certificate(ca.cert_pem())
        key = serialization.load_pem_private_key(ca.key_pem(), password=None)

        assert cert.public_key().public_numbers() == key.public_key().public_numbers()

    def test_new_key_pair_holds_public_key(self) -> None:
        pair = new_key_pair()

        public = serialization.load_pem_public_key(pair.cert_pem())
        private = serialization.load_pem_private_key(pair.key_pem(), password=None)
        assert public.public_numbers() == private.public_key().public_numbers()

    def test_signed_client_cert(self, ca: KeyPair) -> None:
        client = new_signed_client_cert(ca, ADMIN_USER, [ADMIN_GROUP])
        cert = x509.load_pem_x509_certificate(client.cert_pem())
        ca_cert = x509.load_pem_x509_certificate(ca.cert_pem())

        assert cert.issuer == ca_cert.subject
        assert cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value == ADMIN_USER
        assert (
            cert.subject.get_attributes_for_oid(NameOID.ORGANIZATION_NAME)[0].value == ADMIN_GROUP
        )
        usages = cert.extensions.get_extension_for_class(x509.ExtendedKeyUsage).value
        assert ExtendedKeyUsageOID.CLIENT_AUTH in usages

    def test_discovery_hash_format(self, ca: KeyPair) -> None:
        value = discovery_hash(ca.cert_pem())

        assert value.startswith("sha256:")
        assert len(value) == len("sha256:") + 64
        assert discovery_hash(ca.cert_pem()) == value


class TestKubeconfig:
    def test_api_server_url(self) -> None:
        assert api_server_url(API_DNS_NAME) == f"https://{API_DNS_NAME}:6443"

    def test_new_kubeconfig(self, ca: KeyPair) -> None:
        kubeconfig = new_kubeconfig("test-cluster", api_server_url(API_DNS_NAME), ca)

        assert kubeconfig["current-context"] == "kubernetes-admin@test-cluster"
        cluster = kubeconfig["clusters"][0]
        assert cluster["name"] == "test-cluster"
        assert cluster["cluster"]["server"] == f"https://{API_DNS_NAME}:6443"
        assert cluster["cluster"]["certificate-authority-data"] == ca.cert
        user = kubeconfig["users"][0]["user"]
        assert user["client-certificate-data"]
        assert user["client-key-data"]


class TestCertificatesService:
    """Tests for CertificatesService.reconcile_certificates."""

    def test_generates_all_material(self, scope: Scope) -> None:
        CertificatesService(scope).reconcile_certificates()

        spec = scope.cluster_config
        assert spec.ca_key_pair.has_cert_and_key()
        assert spec.etcd_ca_key_pair.has_cert_and_key()
        assert spec.front_proxy_ca_key_pair.has_cert_and_key()
        assert spec.sa_key_pair.has_cert_and_key()
        assert spec.discovery_hashes == [discovery_hash(spec.ca_key_pair.cert_pem())]

    def test_existing_material_is_kept(self, scope: Scope, ca: KeyPair) -> None:
        scope.cluster_config.ca_key_pair = ca

        CertificatesService(scope).reconcile_certificates()
        first = scope.cluster_config.model_copy(deep=True)
        CertificatesService(scope).reconcile_certificates()

        assert scope.cluster_config.ca_key_pair == ca
        assert scope.cluster_config.etcd_ca_key_pair == first.etcd_ca_key_pair
        assert scope.cluster_config.sa_key_pair == first.sa_key_pair

    def test_partial_key_pair_regenerated(self, scope: Scope, ca: KeyPair) -> None:
        scope.cluster_config.ca_key_pair = KeyPair(cert=ca.cert)

        CertificatesService(scope).reconcile_certificates()

        assert scope.cluster_config.ca_key_pair.has_cert_and_key()
        assert scope.cluster_config.ca_key_pair.cert != ca.cert

    def test_no_kubeconfig_without_endpoint(self, scope: Scope) -> None:
        CertificatesService(scope).reconcile_certificates()

        assert scope.cluster_config.admin_kubeconfig == ""

    def test_kubeconfig_once_endpoint_known(self, scope: Scope) -> None:
        service = CertificatesService(scope)
        service.reconcile_certificates()
        scope.network.api_server_ip.dns_name = API_DNS_NAME

        service.reconcile_certificates()

        kubeconfig = yaml.safe_load(scope.cluster_config.admin_kubeconfig)
        assert kubeconfig["clusters"][0]["cluster"]["server"] == f"https://{API_DNS_NAME}:6443"
        assert (
            kubeconfig["clusters"][0]["cluster"]["certificate-authority-data"]
            == scope.cluster_config.ca_key_pair.cert
        )

    def test_kubeconfig_not_reissued(self, scope: Scope) -> None:
        scope.network.api_server_ip.dns_name = API_DNS_NAME
        service = CertificatesService(scope)
        service.reconcile_certificates()
        issued = scope.cluster_config.admin_kubeconfig

        service.reconcile_certificates()

        assert scope.cluster_config.admin_kubeconfig == issued
