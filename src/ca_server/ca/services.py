"""
证书签发服务的业务逻辑层。
此模块把 HTTP 数据模型转换为 IssuanceService 调用，供路由层使用。
"""

from cryptography import x509

from . import codec
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


def _to_response_fields(service: IssuanceService, cert: x509.Certificate) -> dict:
    return {
        "certificate": codec.encode_certificate(cert).decode("ascii"),
        "ca_bundle": service.ca_certificate_pem().decode("ascii"),
        "chain": codec.encode_bundle([cert, service.identity.certificate]).decode("ascii"),
        "serial_number": f"{cert.serial_number:x}",
        "not_before": cert.not_valid_before_utc,
        "not_after": cert.not_valid_after_utc,
    }


def issue_certificate_service(service: IssuanceService, req: IssueRequest) -> CertificateResponse:
    """
    处理签发证书的业务逻辑。
    :param service: 签发服务实例。
    :param req: 包含 CSR 的请求对象。
    :return: 包含证书和 CA 证书的响应对象。
    :raises ValueError: CSR 无法解析或未通过校验。
    :raises RuntimeError: 签名过程失败。
    """
    blob = codec.unwrap_transport_text(req.csr)
    cert = service.issue_from_csr(blob, validity_days=req.validity_days)
    return CertificateResponse(**_to_response_fields(service, cert))


def generate_certificate_service(
    service: IssuanceService,
    req: GenerateRequest,
    defaults: DistinguishedName,
) -> GeneratedCertificateResponse:
    """
    由服务端生成密钥与 CSR 并签发证书；未提供的 DN 字段取 defaults。
    :raises ValueError: DN 校验失败。
    :raises RuntimeError: 密钥生成或签名失败。
    """
    dn = DistinguishedName(
        country=req.country if req.country is not None else defaults.country,
        state=req.state if req.state is not None else defaults.state,
        locality=req.locality if req.locality is not None else defaults.locality,
        organization=req.organization if req.organization is not None else defaults.organization,
        organizational_unit=(
            req.organizational_unit if req.organizational_unit is not None else defaults.organizational_unit
        ),
        common_name=req.common_name if req.common_name is not None else defaults.common_name,
    )
    key_pem, cert = service.issue_key_pair(dn, validity_days=req.validity_days, alt_names=req.alt_names)
    return GeneratedCertificateResponse(
        private_key=key_pem.decode("ascii"),
        **_to_response_fields(service, cert),
    )


def ca_certificate_service(service: IssuanceService) -> CACertificateResponse:
    return CACertificateResponse(certificate=service.ca_certificate_pem().decode("ascii"))


def verify_certificate_service(service: IssuanceService, req: VerifyCertificateRequest) -> VerifyCertificateResponse:
    """
    验证证书是否由本 CA 签发。无法解析的输入不抛异常，返回 is_issued_by_us=False。
    """
    try:
        blob = codec.unwrap_transport_text(req.certificate_content)
    except ValueError:
        return VerifyCertificateResponse(is_issued_by_us=False)
    result = service.verify(blob)
    return VerifyCertificateResponse(
        is_issued_by_us=result.is_issued_by_us,
        issuer_common_name=result.issuer_common_name,
        subject_common_name=result.subject_common_name,
    )

