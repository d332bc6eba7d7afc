"""
证书签发：校验 CSR、分配序列号并用 CA 私钥签名叶子证书。
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID
from loguru import logger

from . import keys
from .csr import common_name_of
from .errors import InvalidCSRError, SigningError
from .serials import RandomSerialAllocator, SerialAllocator
from .store import CAIdentity


def _leaf_key_usage(public_key) -> x509.KeyUsage:
    return x509.KeyUsage(
        digital_signature=True,
        key_encipherment=isinstance(public_key, rsa.RSAPublicKey),
        key_cert_sign=False,
        crl_sign=False,
        content_commitment=False,
        data_encipherment=False,
        key_agreement=False,
        encipher_only=False,
        decipher_only=False,
    )


def _authority_key_identifier(ca: CAIdentity) -> x509.AuthorityKeyIdentifier:
    try:
        ski = ca.certificate.extensions.get_extension_for_class(x509.SubjectKeyIdentifier).value
    except x509.ExtensionNotFound:
        return x509.AuthorityKeyIdentifier.from_issuer_public_key(ca.private_key.public_key())
    return x509.AuthorityKeyIdentifier.from_issuer_subject_key_identifier(ski)


def _requested_alt_names(csr: x509.CertificateSigningRequest) -> x509.SubjectAlternativeName | None:
    try:
        return csr.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return None
    except ValueError as e:
        raise InvalidCSRError(f"CSR 扩展无法解析: {e}") from e


class CertificateIssuer:
    """
    使用 CA 身份签发叶子证书。

    :param serials: 序列号分配器，默认使用纯随机策略。
    :param require_common_name: 是否拒绝不含 CN 的 CSR。
    """

    def __init__(
        self,
        serials: SerialAllocator | None = None,
        require_common_name: bool = True,
    ) -> None:
        self.serials = serials or RandomSerialAllocator()
        self.require_common_name = require_common_name

    def issue(
        self,
        ca: CAIdentity,
        csr: x509.CertificateSigningRequest,
        validity_days: int,
    ) -> x509.Certificate:
        """
        校验 CSR 并签发证书。
        :param ca: 已加载的 CA 身份。
        :param csr: 客户端的证书签名请求。
        :param validity_days: 有效天数，必须为正。
        :return: 新签发的证书。
        :raises InvalidCSRError: CSR 自签名无效或不满足签发策略。
        :raises SigningError: CA 签名失败。
        """
        if validity_days <= 0:
            raise ValueError(f"有效期必须为正数: {validity_days}")

        if not csr.is_signature_valid:
            raise InvalidCSRError("CSR 自签名校验失败")

        if self.require_common_name and not common_name_of(csr.subject):
            raise InvalidCSRError("CSR 缺少 Common Name")

        try:
            public_key = csr.public_key()
        except (ValueError, UnsupportedAlgorithm) as e:
            raise InvalidCSRError(f"CSR 公钥无法解析: {e}") from e
        alt_names = _requested_alt_names(csr)

        serial = self.serials.next_serial()
        now = datetime.now(timezone.utc).replace(microsecond=0)
        builder = (
            x509.CertificateBuilder()
            .subject_name(csr.subject)
            .issuer_name(ca.subject)
            .public_key(public_key)
            .serial_number(serial)
            .not_valid_before(now)
            .not_valid_after(now + timedelta(days=validity_days))
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(_leaf_key_usage(public_key), critical=True)
            .add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]),
                critical=False,
            )
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
            .add_extension(_authority_key_identifier(ca), critical=False)
        )
        if alt_names is not None:
            builder = builder.add_extension(alt_names, critical=False)

        try:
            cert = builder.sign(private_key=ca.private_key, algorithm=keys.signing_hash(ca.private_key))
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            logger.error(f"证书签名失败: {e}")
            raise SigningError(f"证书签名失败: {e}") from e

        logger.info(
            f"已签发证书: subject={cert.subject.rfc4514_string()}, "
            f"serial=0x{cert.serial_number:x}, not_after={cert.not_valid_after_utc}"
        )
        return cert


def verify_issued(ca: CAIdentity, cert: x509.Certificate) -> bool:
    """判断证书是否由该 CA 直接签发（签发者一致且签名有效）。"""
    try:
        cert.verify_directly_issued_by(ca.certificate)
    except (ValueError, TypeError, InvalidSignature, UnsupportedAlgorithm):
        return False
    return True
