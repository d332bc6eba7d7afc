"""
密钥材料：RSA 密钥对的生成与 PEM 编解码。
"""

from __future__ import annotations

from typing import Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from loguru import logger

from .errors import DecodingError, EncodingError, KeyGenerationError

DEFAULT_KEY_BITS = 4096
MIN_KEY_BITS = 2048
PUBLIC_EXPONENT = 65537

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]


def generate(bits: int = DEFAULT_KEY_BITS) -> rsa.RSAPrivateKey:
    """
    生成新的 RSA 密钥对，公钥指数固定为 65537。
    :param bits: 模数长度，不得低于 2048。
    :return: RSA 私钥对象（公钥通过 public_key() 获取）。
    :raises KeyGenerationError: 参数不安全或后端无法生成密钥。
    """
    if bits < MIN_KEY_BITS:
        raise KeyGenerationError(f"密钥长度过短: {bits} < {MIN_KEY_BITS}")
    try:
        key = rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=bits)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise KeyGenerationError(f"RSA 密钥生成失败: {e}") from e
    logger.debug(f"已生成 {bits} 位 RSA 密钥")
    return key


def encode_to_text(key: PrivateKey) -> bytes:
    """将私钥序列化为未加密的 PKCS#8 PEM。"""
    try:
        return key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    except (ValueError, TypeError, MemoryError) as e:
        raise EncodingError(f"私钥序列化失败: {e}") from e


def decode_from_text(blob: bytes, password: bytes | None = None) -> PrivateKey:
    """
    解析 PEM 私钥（PKCS#8 或传统格式）。
    :param blob: PEM 字节。
    :param password: 加密私钥的口令，未加密时为 None。
    :return: RSA 或 EC 私钥对象。
    :raises DecodingError: 输入格式错误、口令错误或密钥类型不支持签名。
    """
    try:
        key = serialization.load_pem_private_key(blob, password=password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise DecodingError(f"无法解析私钥: {e}") from e
    if not isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise DecodingError(f"不支持的私钥类型: {type(key).__name__}")
    return key


def _spki_der(public_key) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def same_public_key(a, b) -> bool:
    """比较两个公钥的 DER 编码是否一致。"""
    return _spki_der(a) == _spki_der(b)


def signing_hash(key: PrivateKey) -> hashes.HashAlgorithm:
    # RSA 与 EC 均使用 SHA-256，禁止 MD5 / SHA-1
    return hashes.SHA256()
