"""
证书签发服务的编排层。

CryptoSubsystem 是进程级的密码子系统句柄：启动时 initialize() 一次，退出时 shutdown() 一次。
IssuanceService 持有只读的 CA 身份，把 CSR 字节转换为签名证书字节。
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum

from cryptography import x509
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes
from loguru import logger

from . import codec, csr as csr_builder, keys
from .errors import CAError, StorageError, SubsystemStateError
from .issuer import CertificateIssuer, verify_issued
from .repository import CertificateStore, NullCertificateStore
from .store import CAIdentity

# SHA-256("abc")，FIPS 180-2 附录 B.1
_SHA256_ABC = bytes.fromhex("ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad")


class SubsystemState(str, Enum):
    NEW = "new"
    ACTIVE = "active"
    CLOSED = "closed"


class CryptoSubsystem:
    """进程级密码子系统句柄。"""

    def __init__(self) -> None:
        self._state = SubsystemState.NEW
        self._lock = threading.Lock()
        self.backend_version: str | None = None

    @property
    def state(self) -> SubsystemState:
        return self._state

    def initialize(self) -> None:
        """
        探测 OpenSSL 后端并做 SHA-256 自检，只能调用一次。
        :raises SubsystemStateError: 重复初始化或自检失败。
        """
        with self._lock:
            if self._state is not SubsystemState.NEW:
                raise SubsystemStateError(f"密码子系统无法初始化，当前状态: {self._state.value}")
            backend = default_backend()
            digest = hashes.Hash(hashes.SHA256())
            digest.update(b"abc")
            if digest.finalize() != _SHA256_ABC:
                raise SubsystemStateError("SHA-256 自检失败")
            self.backend_version = backend.openssl_version_text()
            self._state = SubsystemState.ACTIVE
        logger.info(f"密码子系统已初始化: {self.backend_version}")

    def shutdown(self) -> None:
        with self._lock:
            if self._state is not SubsystemState.ACTIVE:
                raise SubsystemStateError(f"密码子系统无法关闭，当前状态: {self._state.value}")
            self._state = SubsystemState.CLOSED
        logger.info("密码子系统已关闭")

    def require_active(self) -> None:
        if self._state is not SubsystemState.ACTIVE:
            raise SubsystemStateError(f"密码子系统不可用，当前状态: {self._state.value}")

    def __enter__(self) -> "CryptoSubsystem":
        self.initialize()
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()


@dataclass(frozen=True)
class VerificationResult:
    is_issued_by_us: bool
    issuer_common_name: str | None = None
    subject_common_name: str | None = None


def error_response(error: Exception) -> bytes:
    """将错误映射为传输层的单行错误响应。"""
    message = " ".join(str(error).split())
    return f"ERROR {type(error).__name__}: {message}\n".encode("utf-8")


class IssuanceService:
    """
    接收 CSR、签发证书并返回 PEM。

    :param subsystem: 已初始化的密码子系统句柄。
    :param identity: 启动时加载的 CA 身份。
    :param issuer: 证书签发器。
    :param validity_days: 默认有效天数。
    :param max_validity_days: 允许请求的最大有效天数。
    :param key_bits: 服务端代为生成密钥时的位数。
    :param store: 已签发证书的归档接口。
    """

    def __init__(
        self,
        subsystem: CryptoSubsystem,
        identity: CAIdentity,
        issuer: CertificateIssuer | None = None,
        validity_days: int = 365,
        max_validity_days: int | None = None,
        key_bits: int = keys.DEFAULT_KEY_BITS,
        store: CertificateStore | None = None,
    ) -> None:
        self.subsystem = subsystem
        self.identity = identity
        self.issuer = issuer or CertificateIssuer()
        self.validity_days = validity_days
        self.max_validity_days = max_validity_days
        self.key_bits = key_bits
        self.store = store or NullCertificateStore()

    def _issue(self, csr: x509.CertificateSigningRequest, validity_days: int | None) -> x509.Certificate:
        days = self.validity_days if validity_days is None else validity_days
        if self.max_validity_days is not None and days > self.max_validity_days:
            raise ValueError(f"请求的有效期超过上限: {days} > {self.max_validity_days}")
        cert = self.issuer.issue(self.identity, csr, days)
        try:
            self.store.save(cert)
        except OSError as e:
            raise StorageError(f"证书归档失败: {e}") from e
        return cert

    def issue_from_csr(self, blob: bytes, validity_days: int | None = None) -> x509.Certificate:
        """
        解码 CSR 并签发证书。
        :raises DecodingError / InvalidCSRError / SigningError / SerialAllocationError / StorageError
        """
        self.subsystem.require_active()
        request = codec.decode_csr(blob)
        return self._issue(request, validity_days)

    def handle_request(self, raw: bytes) -> bytes:
        """
        处理一次传输层请求：CSR 字节 -> 证书 PEM 字节。
        客户端错误与签名、台账、归档等本地故障都映射为错误响应，服务继续运行。
        """
        try:
            cert = self.issue_from_csr(raw)
            return codec.encode_certificate(cert)
        except (CAError, ValueError) as e:
            if isinstance(e, RuntimeError):
                logger.error(f"签发请求处理失败: {type(e).__name__}: {e}")
            else:
                logger.warning(f"拒绝签发请求: {type(e).__name__}: {e}")
            return error_response(e)

    def issue_key_pair(
        self,
        dn: csr_builder.DistinguishedName,
        validity_days: int | None = None,
        alt_names: list[str] | None = None,
    ) -> tuple[bytes, x509.Certificate]:
        """
        服务端代为生成密钥与 CSR，并签发证书。
        :return: (PKCS#8 PEM 私钥, 证书)。
        :raises CSRConstructionError / SigningError
        """
        self.subsystem.require_active()
        key, request = csr_builder.build(dn, bits=self.key_bits, alt_names=alt_names)
        cert = self._issue(request, validity_days)
        return keys.encode_to_text(key), cert

    def ca_certificate_pem(self) -> bytes:
        self.subsystem.require_active()
        return self.identity.certificate_pem

    def verify(self, blob: bytes) -> VerificationResult:
        """判断证书是否由本 CA 签发；无法解析的输入视为不是。"""
        self.subsystem.require_active()
        try:
            cert = codec.decode_certificate(blob)
        except CAError as e:
            logger.warning(f"验证证书归属时解析失败: {e}")
            return VerificationResult(is_issued_by_us=False)
        return VerificationResult(
            is_issued_by_us=verify_issued(self.identity, cert),
            issuer_common_name=csr_builder.common_name_of(cert.issuer),
            subject_common_name=csr_builder.common_name_of(cert.subject),
        )

