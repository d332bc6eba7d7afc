"""
CA 身份（私钥 + 根证书）的加载、校验与开发环境自举。
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa

from loguru import logger

from . import codec, keys
from .csr import DistinguishedName
from .errors import CAError, CALoadError, KeyGenerationError


@dataclass(frozen=True)
class CAIdentity:
    """CA 私钥与根证书。启动时加载一次，之后只读共享。"""

    private_key: keys.PrivateKey
    certificate: x509.Certificate

    @property
    def subject(self) -> x509.Name:
        return self.certificate.subject

    @property
    def certificate_pem(self) -> bytes:
        return codec.encode_certificate(self.certificate)


def _read(path: str | os.PathLike[str], what: str) -> bytes:
    p = Path(path)
    if not p.is_file():
        raise CALoadError(f"{what}文件不存在: {p}")
    try:
        return p.read_bytes()
    except OSError as e:
        raise CALoadError(f"{what}文件无法读取: {p}: {e}") from e


def _is_ca_certificate(cert: x509.Certificate) -> bool:
    try:
        bc = cert.extensions.get_extension_for_class(x509.BasicConstraints).value
    except x509.ExtensionNotFound:
        return False
    return bc.ca


def load(
    key_path: str | os.PathLike[str],
    cert_path: str | os.PathLike[str],
    password: bytes | None = None,
) -> CAIdentity:
    """
    从 PEM 文件加载 CA 身份。
    :param key_path: CA 私钥路径。
    :param cert_path: CA 根证书路径。
    :param password: 私钥口令（未加密时为 None）。
    :return: 完整的 CAIdentity。
    :raises CALoadError: 文件缺失/不可读、解码失败，或证书公钥与私钥不匹配。
    """
    cert_blob = _read(cert_path, "CA 证书")
    key_blob = _read(key_path, "CA 私钥")
    try:
        certificate = codec.decode_certificate(cert_blob)
        private_key = keys.decode_from_text(key_blob, password=password)
    except CAError as e:
        raise CALoadError(f"CA 材料解码失败: {e}") from e

    if not keys.same_public_key(certificate.public_key(), private_key.public_key()):
        raise CALoadError("CA 证书公钥与私钥不匹配")

    if not _is_ca_certificate(certificate):
        logger.warning(f"CA 证书未声明 BasicConstraints CA=TRUE: {certificate.subject.rfc4514_string()}")

    identity = CAIdentity(private_key=private_key, certificate=certificate)
    logger.info(
        f"CA 已加载: subject={certificate.subject.rfc4514_string()}, "
        f"serial=0x{certificate.serial_number:x}"
    )
    return identity


def create_self_signed(
    dn: DistinguishedName,
    bits: int = keys.DEFAULT_KEY_BITS,
    validity_days: int = 3650,
) -> CAIdentity:
    """生成新的 CA 私钥与自签根证书（开发环境使用）。"""
    try:
        ca_key: rsa.RSAPrivateKey = keys.generate(bits)
    except KeyGenerationError as e:
        raise CALoadError(f"CA 私钥生成失败: {e}") from e
    subject = dn.to_x509_name()
    now = datetime.now(timezone.utc).replace(microsecond=0)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(ca_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=validity_days))
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                key_encipherment=False,
                key_cert_sign=True,
                crl_sign=True,
                content_commitment=False,
                data_encipherment=False,
                key_agreement=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(ca_key.public_key()), critical=False)
    )
    certificate = builder.sign(private_key=ca_key, algorithm=keys.signing_hash(ca_key))
    logger.info(f"已生成自签根证书: subject={subject.rfc4514_string()}")
    return CAIdentity(private_key=ca_key, certificate=certificate)


def save(
    identity: CAIdentity,
    key_path: str | os.PathLike[str],
    cert_path: str | os.PathLike[str],
) -> None:
    """将 CA 私钥（权限 0600）与根证书写入磁盘。"""
    key_file = Path(key_path)
    cert_file = Path(cert_path)
    key_file.parent.mkdir(parents=True, exist_ok=True)
    cert_file.parent.mkdir(parents=True, exist_ok=True)

    fd = os.open(key_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(keys.encode_to_text(identity.private_key))
    cert_file.write_bytes(identity.certificate_pem)


def load_or_create(
    key_path: str | os.PathLike[str],
    cert_path: str | os.PathLike[str],
    dn: DistinguishedName,
    bits: int = keys.DEFAULT_KEY_BITS,
    password: bytes | None = None,
) -> CAIdentity:
    """两个文件都存在时加载，否则生成新的开发 CA 并保存。"""
    if Path(key_path).exists() and Path(cert_path).exists():
        return load(key_path, cert_path, password=password)
    if Path(key_path).exists() or Path(cert_path).exists():
        # 只存在其一时不覆盖
        raise CALoadError("CA 私钥与证书只存在其一，拒绝自动生成")
    logger.warning(f"未找到 CA 材料，生成开发 CA: {key_path}, {cert_path}")
    identity = create_self_signed(dn, bits=bits)
    save(identity, key_path, cert_path)
    return identity
