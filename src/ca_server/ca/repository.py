"""
已签发证书的持久化接口。
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol

from cryptography import x509
from loguru import logger

from . import codec
from .errors import StorageError


class CertificateStore(Protocol):
    def save(self, cert: x509.Certificate) -> None: ...


class NullCertificateStore:
    def save(self, cert: x509.Certificate) -> None:
        return None


class FileCertificateStore:
    """按序列号将证书写入目录：<serial-hex>.pem。"""

    def __init__(self, directory: str | os.PathLike[str]) -> None:
        self.directory = Path(directory)

    def path_for(self, serial: int) -> Path:
        return self.directory / f"{serial:x}.pem"

    def save(self, cert: x509.Certificate) -> None:
        """:raises StorageError: 目录或文件无法写入。"""
        path = self.path_for(cert.serial_number)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            path.write_bytes(codec.encode_certificate(cert))
        except OSError as e:
            raise StorageError(f"证书归档失败: {path}: {e}") from e
        logger.debug(f"证书已归档: {path}")

    def load(self, serial: int) -> x509.Certificate | None:
        path = self.path_for(serial)
        if not path.exists():
            return None
        return codec.decode_certificate(path.read_bytes())
