"""
配置加载模块：支持 .env、环境变量、工作目录 config.json（或 CONFIG_FILE 指定）多来源合并。
公开接口：
- Config: 读取配置的设置类
- config: Config 的单例实例
内部方法：
- Config.settings_customise_sources: 自定义配置来源顺序
- Config.check_key_bits / Config.check_validity: 字段校验
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Literal, Tuple

from loguru import logger
from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource

from src.ca_server.ca.csr import DistinguishedName


class Config(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 8000

    # CA 材料
    ca_key_path: str = "ca/ca_key.pem"
    ca_cert_path: str = "ca/ca_cert.pem"
    ca_key_password: SecretStr | None = None
    ca_auto_create: bool = False

    # 签发策略
    default_validity_days: int = 365
    max_validity_days: int = 825
    key_bits: int = 4096
    serial_policy: Literal["random", "ledger"] = "random"
    serial_ledger_path: str = "ca/serials.txt"
    issued_cert_dir: str | None = None

    # 服务端代为生成证书时使用的默认 DN
    dn_country: str = "US"
    dn_state: str = "MI"
    dn_locality: str = ""
    dn_organization: str = "Grand Valley State University"
    dn_organizational_unit: str = "IT"
    dn_common_name: str = "www.gvsu.edu"

    # CA 自举时使用的根证书 DN
    ca_root_common_name: str = "Private Development Root CA"
    ca_root_organization_name: str = "Private CA"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("key_bits")
    @classmethod
    def check_key_bits(cls, value: int) -> int:
        if value < 2048:
            raise ValueError("key_bits 不得低于 2048")
        return value

    @field_validator("default_validity_days", "max_validity_days")
    @classmethod
    def check_validity(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("有效天数必须为正数")
        return value

    @model_validator(mode="after")
    def check_validity_range(self) -> "Config":
        if self.default_validity_days > self.max_validity_days:
            raise ValueError("default_validity_days 不能超过 max_validity_days")
        return self

    def dn_defaults(self) -> DistinguishedName:
        return DistinguishedName(
            country=self.dn_country,
            state=self.dn_state,
            locality=self.dn_locality,
            organization=self.dn_organization,
            organizational_unit=self.dn_organizational_unit,
            common_name=self.dn_common_name,
        )

    def ca_root_dn(self) -> DistinguishedName:
        return DistinguishedName(
            country=self.dn_country,
            organization=self.ca_root_organization_name,
            common_name=self.ca_root_common_name,
        )

    def ca_key_password_bytes(self) -> bytes | None:
        if self.ca_key_password is None:
            return None
        return self.ca_key_password.get_secret_value().encode("utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """自定义配置来源顺序：入参 > 环境变量 > .env > config.json > secrets。"""

        class JsonFileSettingsSource(PydanticBaseSettingsSource):
            """从工作目录的 config.json（或 CONFIG_FILE 指定路径）加载配置的自定义 Source。"""

            def __init__(self, settings_cls):
                super().__init__(settings_cls)
                self._data: Dict[str, Any] | None = None

            def _load(self) -> None:
                if self._data is not None:
                    return
                cfg_path = os.environ.get("CONFIG_FILE")
                path = Path(cfg_path) if cfg_path else Path.cwd() / "config.json"
                if not path.exists():
                    self._data = {}
                    return
                try:
                    with path.open("r", encoding="utf-8") as f:
                        data = json.load(f)
                    self._data = data if isinstance(data, dict) else {}
                except (OSError, ValueError) as e:
                    logger.warning(f"读取配置文件失败，已忽略: {path}: {e}")
                    self._data = {}

            def __call__(self) -> Dict[str, Any]:
                self._load()
                return dict(self._data or {})

            def get_field_value(self, field, field_name):  # type: ignore[override]
                """为满足抽象基类要求，按键名/别名返回字段值。"""
                self._load()
                data = self._data or {}
                key_alias = getattr(field, "alias", None) or field_name
                if key_alias in data:
                    return data[key_alias], key_alias, True
                if field_name in data:
                    return data[field_name], field_name, True
                return None, None, False

        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonFileSettingsSource(settings_cls),
            file_secret_settings,
        )


config = Config()
