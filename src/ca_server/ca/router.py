"""
证书签发服务的 FastAPI 路由定义。
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from loguru import logger

from . import services
from .csr import DistinguishedName
from .issuance import IssuanceService
from .schemas import (
    IssueRequest,
    GenerateRequest,
    CertificateResponse,
    GeneratedCertificateResponse,
    CACertificateResponse,
    VerifyCertificateRequest,
    VerifyCertificateResponse,
)

router = APIRouter(prefix="/ca", tags=["Certificate Authority"])


def get_issuance_service(request: Request) -> IssuanceService:
    service = getattr(request.app.state, "issuance", None)
    if service is None:
        raise HTTPException(status_code=503, detail="签发服务未就绪")
    return service


def get_dn_defaults(request: Request) -> DistinguishedName:
    return getattr(request.app.state, "dn_defaults", None) or DistinguishedName()


@router.post("/issue-certificate", response_model=CertificateResponse)
async def issue_certificate(
    req: IssueRequest,
    service: IssuanceService = Depends(get_issuance_service),
) -> CertificateResponse:
    """
    客户端提交 CSR，请求签发证书。
    """
    try:
        return services.issue_certificate_service(service, req)
    except ValueError as e:
        # CSR 格式错误或未通过校验，返回 400
        logger.warning(f"拒绝签发请求: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        # 签名等本地故障，返回 500
        raise HTTPException(status_code=500, detail=f"证书签发失败: {str(e)}")
    except Exception as e:
        logger.error(f"签发证书时发生未预期错误: {e}")
        raise HTTPException(status_code=500, detail=f"内部服务器错误: {str(e)}")


@router.post("/generate-certificate", response_model=GeneratedCertificateResponse)
def generate_certificate(
    req: GenerateRequest,
    service: IssuanceService = Depends(get_issuance_service),
    defaults: DistinguishedName = Depends(get_dn_defaults),
) -> GeneratedCertificateResponse:
    """
    由服务端生成密钥与证书，私钥随响应返回。
    """
    try:
        return services.generate_certificate_service(service, req, defaults)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RuntimeError as e:
        raise HTTPException(status_code=500, detail=f"证书签发失败: {str(e)}")
    except Exception as e:
        logger.error(f"生成证书时发生未预期错误: {e}")
        raise HTTPException(status_code=500, detail=f"内部服务器错误: {str(e)}")


@router.get("/ca-certificate", response_model=CACertificateResponse)
async def ca_certificate(
    service: IssuanceService = Depends(get_issuance_service),
) -> CACertificateResponse:
    """
    返回 CA 根证书，客户端据此建立信任。
    """
    try:
        return services.ca_certificate_service(service)
    except RuntimeError as e:
        raise HTTPException(status_code=500, detail=f"内部服务器错误: {str(e)}")


@router.post("/verify-certificate", response_model=VerifyCertificateResponse)
async def verify_certificate(
    req: VerifyCertificateRequest,
    service: IssuanceService = Depends(get_issuance_service),
) -> VerifyCertificateResponse:
    """
    客户端上传证书内容，验证该证书是否由我们签发。
    """
    try:
        return services.verify_certificate_service(service, req)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"内部服务器错误: {str(e)}")
