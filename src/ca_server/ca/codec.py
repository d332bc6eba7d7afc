"""
证书与 CSR 的 PEM 编解码。

解码只检查结构，不做任何签名校验。
"""

from __future__ import annotations

import base64
import binascii
import re
from typing import Iterable

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding

from .errors import DecodingError, EncodingError

_PEM_HEADER = re.compile(rb"-----BEGIN [A-Z0-9 ]+-----")


def _is_pem(blob: bytes) -> bool:
    return _PEM_HEADER.search(blob) is not None


def encode_certificate(cert: x509.Certificate) -> bytes:
    try:
        return cert.public_bytes(Encoding.PEM)
    except (ValueError, MemoryError) as e:
        raise EncodingError(f"证书序列化失败: {e}") from e


def decode_certificate(blob: bytes) -> x509.Certificate:
    """
    解析 PEM（或 DER）格式的证书。
    :raises DecodingError: 输入不是结构合法的 X.509 证书。
    """
    try:
        if _is_pem(blob):
            return x509.load_pem_x509_certificate(blob)
        return x509.load_der_x509_certificate(blob)
    except (ValueError, TypeError) as e:
        raise DecodingError(f"无效的证书格式: {e}") from e


def encode_csr(csr: x509.CertificateSigningRequest) -> bytes:
    try:
        return csr.public_bytes(Encoding.PEM)
    except (ValueError, MemoryError) as e:
        raise EncodingError(f"CSR 序列化失败: {e}") from e


def decode_csr(blob: bytes) -> x509.CertificateSigningRequest:
    """
    解析 PEM（或 DER）格式的 CSR。
    :raises DecodingError: 输入不是结构合法的 PKCS#10 请求。
    """
    try:
        if _is_pem(blob):
            return x509.load_pem_x509_csr(blob)
        return x509.load_der_x509_csr(blob)
    except (ValueError, TypeError) as e:
        raise DecodingError(f"无效的 CSR 格式: {e}") from e


def encode_bundle(certs: Iterable[x509.Certificate]) -> bytes:
    """按顺序（叶子证书在前）拼接 PEM 证书链。"""
    return b"".join(encode_certificate(c) for c in certs)


def unwrap_transport_text(text: str) -> bytes:
    """
    将传输层文本还原为可解码的字节，兼容以下输入形式：
    1) 直接的 PEM 文本
    2) Base64 编码的 PEM 文本
    3) Base64 编码的 DER 二进制

    :raises DecodingError: 既不是 PEM 也不是合法 Base64。
    """
    stripped = text.strip()
    if not stripped:
        raise DecodingError("输入为空")
    raw = stripped.encode("utf-8")
    if _is_pem(raw):
        return raw
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodingError("输入既不是 PEM 也不是 Base64") from e
