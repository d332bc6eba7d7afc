"""
测试 serials.py 模块：序列号分配策略。
"""

import threading
from unittest.mock import patch

import pytest

from src.ca_server.ca import serials
from src.ca_server.ca.errors import SerialAllocationError


def test_random_allocator_is_wide_and_distinct():
    allocator = serials.RandomSerialAllocator()
    values = {allocator.next_serial() for _ in range(50)}
    assert len(values) == 50
    assert all(0 < v < 2**159 for v in values)


def test_ledger_persists_serials(tmp_path):
    path = tmp_path / "ledger" / "serials.txt"
    first = serials.LedgerSerialAllocator(path)
    a = first.next_serial()
    b = first.next_serial()
    assert a != b

    lines = path.read_text(encoding="utf-8").split()
    assert lines == [f"{a:x}", f"{b:x}"]

    # 重新打开台账后仍能识别已分配的序列号
    reopened = serials.LedgerSerialAllocator(path)
    assert a in reopened
    assert b in reopened


def test_ledger_redraws_on_collision(tmp_path):
    path = tmp_path / "serials.txt"
    path.write_text("1\n", encoding="utf-8")
    allocator = serials.LedgerSerialAllocator(path)
    with patch("src.ca_server.ca.serials.x509.random_serial_number", side_effect=[1, 1, 2]):
        assert allocator.next_serial() == 2


def test_ledger_gives_up_after_repeated_collisions(tmp_path):
    path = tmp_path / "serials.txt"
    path.write_text("1\n", encoding="utf-8")
    allocator = serials.LedgerSerialAllocator(path)
    with patch("src.ca_server.ca.serials.x509.random_serial_number", return_value=1):
        with pytest.raises(SerialAllocationError, match="均与台账重复"):
            allocator.next_serial()


def test_ledger_is_unique_under_concurrency(tmp_path):
    allocator = serials.LedgerSerialAllocator(tmp_path / "serials.txt")
    results = []
    lock = threading.Lock()

    def worker():
        for _ in range(20):
            value = allocator.next_serial()
            with lock:
                results.append(value)

    threads = [threading.Thread(target=worker) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 100
    assert len(set(results)) == 100
    assert len((tmp_path / "serials.txt").read_text(encoding="utf-8").split()) == 100


def test_make_allocator(tmp_path):
    assert isinstance(serials.make_allocator("random"), serials.RandomSerialAllocator)
    ledger = serials.make_allocator("ledger", str(tmp_path / "s.txt"))
    assert isinstance(ledger, serials.LedgerSerialAllocator)
    with pytest.raises(ValueError, match="serial_ledger_path"):
        serials.make_allocator("ledger", None)
    with pytest.raises(ValueError, match="未知的序列号策略"):
        serials.make_allocator("sequential")


def test_corrupt_ledger_raises_server_error(tmp_path):
    path = tmp_path / "serials.txt"
    path.write_text("1a\nzz-not-hex\n", encoding="utf-8")
    allocator = serials.LedgerSerialAllocator(path)
    with pytest.raises(SerialAllocationError, match="第 2 行损坏"):
        allocator.next_serial()


def test_unwritable_ledger_raises_server_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    allocator = serials.LedgerSerialAllocator(blocker / "serials.txt")
    with pytest.raises(SerialAllocationError, match="无法写入"):
        allocator.next_serial()
