"""
FastAPI 应用入口点。

lifespan 负责密码子系统的初始化/关闭与 CA 身份的一次性加载；
这两步任一失败都会中止启动。
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from src.ca_server.ca import store
from src.ca_server.ca.errors import CALoadError, SubsystemStateError
from src.ca_server.ca.issuance import CryptoSubsystem, IssuanceService
from src.ca_server.ca.issuer import CertificateIssuer
from src.ca_server.ca.repository import FileCertificateStore, NullCertificateStore
from src.ca_server.ca.router import router as ca_router
from src.ca_server.ca.serials import make_allocator
from src.ca_server.config import Config, config


def build_service(cfg: Config, subsystem: CryptoSubsystem) -> IssuanceService:
    """
    按配置加载 CA 并组装签发服务。
    :raises CALoadError: CA 材料无法加载。
    """
    password = cfg.ca_key_password_bytes()
    if cfg.ca_auto_create:
        identity = store.load_or_create(
            cfg.ca_key_path,
            cfg.ca_cert_path,
            cfg.ca_root_dn(),
            bits=cfg.key_bits,
            password=password,
        )
    else:
        identity = store.load(cfg.ca_key_path, cfg.ca_cert_path, password=password)

    issuer = CertificateIssuer(serials=make_allocator(cfg.serial_policy, cfg.serial_ledger_path))
    cert_store = FileCertificateStore(cfg.issued_cert_dir) if cfg.issued_cert_dir else NullCertificateStore()
    return IssuanceService(
        subsystem,
        identity,
        issuer=issuer,
        validity_days=cfg.default_validity_days,
        max_validity_days=cfg.max_validity_days,
        key_bits=cfg.key_bits,
        store=cert_store,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    subsystem = CryptoSubsystem()
    try:
        subsystem.initialize()
    except SubsystemStateError as e:
        logger.critical(f"密码子系统初始化失败，服务无法启动: {e}")
        raise

    try:
        app.state.issuance = build_service(config, subsystem)
        app.state.dn_defaults = config.dn_defaults()
    except (CALoadError, ValueError) as e:
        logger.critical(f"CA 加载失败，服务无法启动: {e}")
        subsystem.shutdown()
        raise
    except Exception as e:
        logger.critical(f"签发服务装配失败，服务无法启动: {e}")
        subsystem.shutdown()
        raise

    try:
        yield
    finally:
        logger.info("应用关闭，释放签发服务")
        app.state.issuance = None
        subsystem.shutdown()


app = FastAPI(title="Private Certificate Authority Service", lifespan=lifespan)

# 包含证书签发服务的路由
app.include_router(ca_router, prefix="/v1")

logger.info(f"config: {config.model_dump_json(indent=4, exclude={'ca_key_password'})}")
