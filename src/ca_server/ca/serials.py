"""
证书序列号分配策略。

- RandomSerialAllocator: 159 位 CSPRNG 随机数，不做去重（碰撞概率可忽略，风险由调用方接受）。
- LedgerSerialAllocator: 随机数 + 持久化台账，发现重复即重新抽取。
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Protocol

from cryptography import x509
from loguru import logger

from .errors import SerialAllocationError

MAX_REDRAWS = 16


class SerialAllocator(Protocol):
    def next_serial(self) -> int: ...


class RandomSerialAllocator:
    def next_serial(self) -> int:
        return x509.random_serial_number()


class LedgerSerialAllocator:
    """
    基于台账文件的序列号分配器。
    台账每行记录一个十六进制序列号；分配过程在锁内完成，保证并发下不重复。
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()
        self._issued: set[int] | None = None

    def _load(self) -> set[int]:
        if self._issued is not None:
            return self._issued
        issued: set[int] = set()
        if self._path.exists():
            try:
                lines = self._path.read_text(encoding="utf-8").splitlines()
            except OSError as e:
                raise SerialAllocationError(f"序列号台账无法读取: {self._path}: {e}") from e
            for lineno, line in enumerate(lines, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    issued.add(int(line, 16))
                except ValueError as e:
                    raise SerialAllocationError(f"序列号台账第 {lineno} 行损坏: {self._path}") from e
        self._issued = issued
        return issued

    def next_serial(self) -> int:
        """
        抽取一个未出现在台账中的序列号并追加记录。
        :raises SerialAllocationError: 台账读写失败或多次抽取均重复。
        """
        with self._lock:
            issued = self._load()
            for _ in range(MAX_REDRAWS):
                serial = x509.random_serial_number()
                if serial not in issued:
                    break
                logger.warning(f"序列号碰撞，重新抽取: 0x{serial:x}")
            else:
                raise SerialAllocationError("多次抽取序列号均与台账重复")
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as f:
                    f.write(f"{serial:x}\n")
            except OSError as e:
                logger.error(f"序列号台账写入失败: {e}")
                raise SerialAllocationError(f"序列号台账无法写入: {self._path}: {e}") from e
            issued.add(serial)
            return serial

    def __contains__(self, serial: int) -> bool:
        with self._lock:
            return serial in self._load()


def make_allocator(policy: str, ledger_path: str | None = None) -> SerialAllocator:
    """根据配置名称创建分配器。"""
    if policy == "random":
        return RandomSerialAllocator()
    if policy == "ledger":
        if not ledger_path:
            raise ValueError("ledger 策略需要配置 serial_ledger_path")
        return LedgerSerialAllocator(ledger_path)
    raise ValueError(f"未知的序列号策略: {policy}")
