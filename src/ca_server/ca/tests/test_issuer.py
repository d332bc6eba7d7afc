"""
测试 issuer.py 模块：CSR 校验、序列号分配与证书签名。
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from src.ca_server.ca import codec, csr as csr_builder, store
from src.ca_server.ca.csr import DistinguishedName
from src.ca_server.ca.errors import InvalidCSRError, SigningError
from src.ca_server.ca.issuer import CertificateIssuer, verify_issued
from src.ca_server.ca.serials import LedgerSerialAllocator


def _tamper_signature(request: x509.CertificateSigningRequest) -> x509.CertificateSigningRequest:
    """翻转签名字段的最后一个字节"""
    der = bytearray(request.public_bytes(Encoding.DER))
    sig = request.signature
    offset = bytes(der).rindex(sig)
    der[offset + len(sig) - 1] ^= 0xFF
    return x509.load_der_x509_csr(bytes(der))


def test_issue_end_to_end(ca_identity, client_csr):
    """CN 为 test.example.org、有效期 30 天的端到端签发"""
    _, request = client_csr
    before = datetime.now(timezone.utc).replace(microsecond=0)
    cert = CertificateIssuer().issue(ca_identity, request, validity_days=30)

    assert csr_builder.common_name_of(cert.subject) == "test.example.org"
    assert cert.subject == request.subject
    assert cert.issuer == ca_identity.subject
    assert cert.not_valid_after_utc - cert.not_valid_before_utc == timedelta(days=30)
    assert abs((cert.not_valid_before_utc - before).total_seconds()) <= 1
    assert cert.signature_hash_algorithm.name == "sha256"
    assert cert.serial_number.bit_length() > 64


def test_issued_certificate_round_trips_and_verifies(ca_identity, client_csr):
    _, request = client_csr
    cert = CertificateIssuer().issue(ca_identity, request, validity_days=30)
    decoded = codec.decode_certificate(codec.encode_certificate(cert))

    assert decoded == cert
    assert decoded.serial_number == cert.serial_number
    assert decoded.subject == cert.subject
    assert decoded.issuer == cert.issuer
    assert decoded.not_valid_before_utc == cert.not_valid_before_utc
    assert decoded.not_valid_after_utc == cert.not_valid_after_utc
    assert decoded.signature == cert.signature
    decoded.verify_directly_issued_by(ca_identity.certificate)
    assert verify_issued(ca_identity, decoded)


def test_issued_certificate_public_key_is_from_csr(ca_identity, client_csr):
    key, request = client_csr
    cert = CertificateIssuer().issue(ca_identity, request, validity_days=1)
    assert cert.public_key().public_numbers() == key.public_key().public_numbers()


def test_sequential_serials_differ(ca_identity, csr_factory):
    issuer = CertificateIssuer()
    _, csr_a = csr_factory("a.example.org")
    _, csr_b = csr_factory("b.example.org")
    cert_a = issuer.issue(ca_identity, csr_a, validity_days=1)
    cert_b = issuer.issue(ca_identity, csr_b, validity_days=1)
    assert cert_a.serial_number != cert_b.serial_number


def test_tampered_csr_signature_is_rejected(ca_identity, client_csr):
    _, request = client_csr
    tampered = _tamper_signature(request)
    assert not tampered.is_signature_valid
    with pytest.raises(InvalidCSRError, match="自签名校验失败"):
        CertificateIssuer().issue(ca_identity, tampered, validity_days=30)


def test_csr_without_common_name(ca_identity, csr_factory):
    _, request = csr_factory(None)
    with pytest.raises(InvalidCSRError, match="Common Name"):
        CertificateIssuer().issue(ca_identity, request, validity_days=30)

    cert = CertificateIssuer(require_common_name=False).issue(ca_identity, request, validity_days=30)
    assert csr_builder.common_name_of(cert.subject) is None


@pytest.mark.parametrize("days", [0, -1])
def test_non_positive_validity_rejected(ca_identity, client_csr, days):
    _, request = client_csr
    with pytest.raises(ValueError, match="有效期必须为正数"):
        CertificateIssuer().issue(ca_identity, request, validity_days=days)


def test_leaf_extensions(ca_identity):
    _, request = csr_builder.build(
        DistinguishedName(common_name="api.example.org"), bits=2048, alt_names=["api2.example.org"]
    )
    cert = CertificateIssuer().issue(ca_identity, request, validity_days=30)
    ext = cert.extensions

    assert ext.get_extension_for_class(x509.BasicConstraints).value.ca is False
    ku = ext.get_extension_for_class(x509.KeyUsage).value
    assert ku.digital_signature and ku.key_encipherment and not ku.key_cert_sign
    eku = ext.get_extension_for_class(x509.ExtendedKeyUsage).value
    assert ExtendedKeyUsageOID.SERVER_AUTH in eku
    assert ExtendedKeyUsageOID.CLIENT_AUTH in eku
    san = ext.get_extension_for_class(x509.SubjectAlternativeName).value
    assert san.get_values_for_type(x509.DNSName) == ["api.example.org", "api2.example.org"]

    ca_ski = ca_identity.certificate.extensions.get_extension_for_class(x509.SubjectKeyIdentifier).value
    aki = ext.get_extension_for_class(x509.AuthorityKeyIdentifier).value
    assert aki.key_identifier == ca_ski.digest


def test_ec_csr_and_ec_ca():
    """EC 密钥的 CA 也能签发 EC 公钥的叶子证书"""
    ca_key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "EC Root")])
    now = datetime.now(timezone.utc)
    ca_cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(ca_key, hashes.SHA256())
    )
    identity = store.CAIdentity(private_key=ca_key, certificate=ca_cert)

    leaf_key = ec.generate_private_key(ec.SECP256R1())
    request = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "ec.example.org")]))
        .sign(leaf_key, hashes.SHA256())
    )
    cert = CertificateIssuer().issue(identity, request, validity_days=5)
    assert verify_issued(identity, cert)
    ku = cert.extensions.get_extension_for_class(x509.KeyUsage).value
    assert ku.key_encipherment is False


def test_signing_failure_is_wrapped(ca_identity, client_csr):
    _, request = client_csr
    with patch.object(x509.CertificateBuilder, "sign", side_effect=ValueError("unsupported")):
        with pytest.raises(SigningError, match="证书签名失败"):
            CertificateIssuer().issue(ca_identity, request, validity_days=30)


def test_uses_configured_serial_allocator(tmp_path, ca_identity, client_csr):
    ledger = LedgerSerialAllocator(tmp_path / "serials.txt")
    _, request = client_csr
    cert = CertificateIssuer(serials=ledger).issue(ca_identity, request, validity_days=30)
    assert cert.serial_number in ledger


def test_verify_issued_rejects_foreign_certificate(ca_identity, other_ca_identity, client_csr):
    _, request = client_csr
    cert = CertificateIssuer().issue(other_ca_identity, request, validity_days=30)
    assert verify_issued(other_ca_identity, cert)
    assert not verify_issued(ca_identity, cert)
