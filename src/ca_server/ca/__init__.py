"""
私有 CA 核心：密钥材料、编解码、CSR 构造、CA 加载、签发与服务编排。
"""

from .csr import DistinguishedName
from .errors import (
    CAError,
    CALoadError,
    CSRConstructionError,
    DecodingError,
    EncodingError,
    InvalidCSRError,
    KeyGenerationError,
    SigningError,
    SubsystemStateError,
)
from .issuance import CryptoSubsystem, IssuanceService
from .issuer import CertificateIssuer
from .store import CAIdentity

__all__ = [
    "CAError",
    "CAIdentity",
    "CALoadError",
    "CSRConstructionError",
    "CertificateIssuer",
    "CryptoSubsystem",
    "DecodingError",
    "DistinguishedName",
    "EncodingError",
    "InvalidCSRError",
    "IssuanceService",
    "KeyGenerationError",
    "SigningError",
    "SubsystemStateError",
]
