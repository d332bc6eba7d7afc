"""
证书签发服务的数据模型定义。
"""

from datetime import datetime

from pydantic import BaseModel, Field


class IssueRequest(BaseModel):
    """
    客户端提交 CSR 请求签发证书时的数据模型。
    """
    csr: str  # PEM 文本，或 Base64 编码的 PEM / DER
    validity_days: int | None = Field(default=None, gt=0)


class GenerateRequest(BaseModel):
    """
    由服务端代为生成密钥与证书时的数据模型。未提供的字段使用配置中的默认 DN。
    """
    country: str | None = None
    state: str | None = None
    locality: str | None = None
    organization: str | None = None
    organizational_unit: str | None = None
    common_name: str | None = None
    alt_names: list[str] = Field(default_factory=list)
    validity_days: int | None = Field(default=None, gt=0)


class CertificateResponse(BaseModel):
    """
    服务端返回签发证书的数据模型。
    """
    certificate: str   # PEM 格式的叶子证书
    ca_bundle: str     # PEM 格式的 CA 证书
    chain: str         # 叶子证书在前、CA 证书在后的 PEM 链
    serial_number: str  # 十六进制序列号
    not_before: datetime
    not_after: datetime


class GeneratedCertificateResponse(CertificateResponse):
    """
    附带服务端生成私钥的签发结果。
    """
    private_key: str  # 未加密的 PKCS#8 PEM


class CACertificateResponse(BaseModel):
    certificate: str


class VerifyCertificateRequest(BaseModel):
    """
    客户端请求验证证书归属的数据模型。
    """
    certificate_content: str  # PEM 文本，或 Base64 编码的 PEM / DER


class VerifyCertificateResponse(BaseModel):
    """
    服务端返回证书验证结果的数据模型。
    """
    is_issued_by_us: bool
    issuer_common_name: str | None = None
    subject_common_name: str | None = None
