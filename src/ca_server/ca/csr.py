"""
CSR 构造：可分辨名称 (DN) 模型、校验与自签名。
"""

from __future__ import annotations

import re
from dataclasses import dataclass, fields
from typing import Iterable, Sequence

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from loguru import logger

from . import keys
from .errors import CSRConstructionError, KeyGenerationError

# 字段名 -> (OID, X.520 长度上限)
_COMPONENTS = {
    "country": (NameOID.COUNTRY_NAME, 2),
    "state": (NameOID.STATE_OR_PROVINCE_NAME, 128),
    "locality": (NameOID.LOCALITY_NAME, 128),
    "organization": (NameOID.ORGANIZATION_NAME, 64),
    "organizational_unit": (NameOID.ORGANIZATIONAL_UNIT_NAME, 64),
    "common_name": (NameOID.COMMON_NAME, 64),
}

_PRINTABLE = re.compile(r"^[A-Za-z0-9 '()+,\-./:=?]*$")
_CONTROL = re.compile(r"[\x00-\x1f\x7f]")


@dataclass(frozen=True)
class DistinguishedName:
    """
    证书主体的可分辨名称。空字符串表示该可选字段未设置，编码时会被省略。
    """

    country: str = ""
    state: str = ""
    locality: str = ""
    organization: str = ""
    organizational_unit: str = ""
    common_name: str = ""

    def validate(self) -> None:
        """
        校验各字段能否编码进 X.509 名称。
        :raises CSRConstructionError: 字段包含控制字符、超长或国家代码非法。
        """
        for f in fields(self):
            value = getattr(self, f.name)
            _, limit = _COMPONENTS[f.name]
            if not value:
                continue
            if _CONTROL.search(value):
                raise CSRConstructionError(f"{f.name} 包含控制字符")
            if f.name == "country":
                if len(value) != 2 or not _PRINTABLE.match(value):
                    raise CSRConstructionError(f"国家代码必须为两位字母: {value!r}")
            elif len(value) > limit:
                raise CSRConstructionError(f"{f.name} 超过 {limit} 个字符")

    def to_x509_name(self) -> x509.Name:
        self.validate()
        attributes = []
        for f in fields(self):
            value = getattr(self, f.name)
            if not value:
                continue
            oid, _ = _COMPONENTS[f.name]
            try:
                attributes.append(x509.NameAttribute(oid, value))
            except ValueError as e:
                raise CSRConstructionError(f"{f.name} 无法编码: {e}") from e
        return x509.Name(attributes)

    @classmethod
    def from_x509_name(cls, name: x509.Name) -> "DistinguishedName":
        values = {}
        for field_name, (oid, _) in _COMPONENTS.items():
            attrs = name.get_attributes_for_oid(oid)
            values[field_name] = str(attrs[0].value) if attrs else ""
        return cls(**values)


def common_name_of(name: x509.Name) -> str | None:
    attrs = name.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attrs:
        return None
    return str(attrs[0].value)


def _alt_name_entries(names: Iterable[str]) -> list[x509.GeneralName]:
    seen: list[str] = []
    for n in names:
        if n and n not in seen:
            seen.append(n)
    try:
        return [x509.DNSName(n) for n in seen]
    except ValueError as e:
        raise CSRConstructionError(f"备用名称无法编码为 DNSName: {e}") from e


def build(
    dn: DistinguishedName,
    bits: int = keys.DEFAULT_KEY_BITS,
    server_auth: bool = True,
    alt_names: Sequence[str] | None = None,
) -> tuple[rsa.RSAPrivateKey, x509.CertificateSigningRequest]:
    """
    生成新密钥并构造自签名的 CSR。
    :param dn: 申请者的可分辨名称。
    :param bits: 新密钥的位数。
    :param server_auth: 是否用于服务端 TLS；为 True 时要求 CN 非空并请求 SAN。
    :param alt_names: 额外的 DNS 备用名称。
    :return: (私钥, CSR)。
    :raises CSRConstructionError: DN 校验失败、密钥生成失败或签名失败。
    """
    if server_auth and not dn.common_name:
        raise CSRConstructionError("用于服务端认证的 CSR 必须包含 Common Name")
    subject = dn.to_x509_name()

    try:
        key = keys.generate(bits)
    except KeyGenerationError as e:
        raise CSRConstructionError(f"CSR 密钥生成失败: {e}") from e

    builder = x509.CertificateSigningRequestBuilder().subject_name(subject)
    if server_auth:
        entries = _alt_name_entries([dn.common_name, *(alt_names or [])])
        builder = builder.add_extension(x509.SubjectAlternativeName(entries), critical=False)

    try:
        csr = builder.sign(key, keys.signing_hash(key))
    except (ValueError, TypeError) as e:
        # key 仅在本函数内持有，出错时不返回任何对象
        raise CSRConstructionError(f"CSR 自签名失败: {e}") from e

    logger.debug(f"已构造 CSR: subject={subject.rfc4514_string()}")
    return key, csr
