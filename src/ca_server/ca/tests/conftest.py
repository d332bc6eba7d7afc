"""
测试共用的 CA 与签发服务夹具。测试中统一使用 2048 位密钥以缩短耗时。
"""

from typing import Tuple

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from src.ca_server.ca import store
from src.ca_server.ca.csr import DistinguishedName
from src.ca_server.ca.issuance import CryptoSubsystem, IssuanceService

TEST_KEY_BITS = 2048


@pytest.fixture(scope="session")
def ca_identity() -> store.CAIdentity:
    dn = DistinguishedName(country="US", organization="Test CA", common_name="Test Root CA")
    return store.create_self_signed(dn, bits=TEST_KEY_BITS)


@pytest.fixture(scope="session")
def other_ca_identity() -> store.CAIdentity:
    dn = DistinguishedName(country="US", organization="Other CA", common_name="Other Root CA")
    return store.create_self_signed(dn, bits=TEST_KEY_BITS)


@pytest.fixture
def subsystem():
    sub = CryptoSubsystem()
    sub.initialize()
    yield sub
    if sub.state.value == "active":
        sub.shutdown()


@pytest.fixture
def service(subsystem, ca_identity) -> IssuanceService:
    return IssuanceService(subsystem, ca_identity, validity_days=30, key_bits=TEST_KEY_BITS)


def make_csr(common_name: str | None = "test.example.org") -> Tuple[rsa.RSAPrivateKey, x509.CertificateSigningRequest]:
    """不经过 CSRBuilder，直接用 cryptography 构造一个客户端 CSR。"""
    key = rsa.generate_private_key(public_exponent=65537, key_size=TEST_KEY_BITS)
    attrs = [x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Client Org")]
    if common_name:
        attrs.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name))
    csr = x509.CertificateSigningRequestBuilder().subject_name(x509.Name(attrs)).sign(key, hashes.SHA256())
    return key, csr


@pytest.fixture
def client_csr():
    return make_csr()


@pytest.fixture
def csr_factory():
    return make_csr
