#!/usr/bin/env python
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from loguru import logger


def main() -> None:
    logger.info("Private CA Service, start running!")
    load_dotenv(Path.cwd() / ".env")
    logger.info(f"当前应用环境：{os.getenv('APP_ENV')}")
    log_level = os.getenv("LOG_LEVEL", "INFO").lower()

    # 延迟导入，确保 .env 已加载后再实例化配置
    from src.ca_server.config import config

    uvicorn.run(
        "src.ca_server.main:app",
        host=config.host,
        port=config.port,
        log_level=log_level,
    )


if __name__ == "__main__":
    main()
