"""
字节流传输层的接缝。

传输层（TCP、TLS 包装、分帧等）由外部实现，只需提供 receive() / send()。
"""

from __future__ import annotations

from typing import Protocol

from loguru import logger

from .issuance import IssuanceService


class Transport(Protocol):
    def receive(self) -> bytes: ...

    def send(self, data: bytes) -> None: ...


def serve_once(service: IssuanceService, transport: Transport) -> bytes:
    """完成一次请求周期：接收 CSR，签发，回写响应。返回已发送的字节。"""
    request = transport.receive()
    logger.debug(f"收到签发请求: {len(request)} 字节")
    response = service.handle_request(request)
    transport.send(response)
    return response
