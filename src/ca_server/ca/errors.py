"""
证书签发服务的异常类型。

客户端可修正的错误同时继承 ValueError，服务端本地故障同时继承 RuntimeError，
路由层据此映射为 400 / 500。
"""


class CAError(Exception):
    """所有 CA 相关错误的基类。"""


class KeyGenerationError(CAError, RuntimeError):
    """密钥生成失败（参数不安全或后端不可用）。"""


class EncodingError(CAError, RuntimeError):
    """对象序列化为 PEM 失败。"""


class DecodingError(CAError, ValueError):
    """PEM / DER 输入无法解析。"""


class CSRConstructionError(CAError, ValueError):
    """构造或自签 CSR 失败。"""


class CALoadError(CAError, RuntimeError):
    """加载 CA 私钥或根证书失败，或两者不匹配。"""


class InvalidCSRError(CAError, ValueError):
    """CSR 未通过校验（自签名无效或不满足签发策略）。"""


class SigningError(CAError, RuntimeError):
    """CA 签名操作本身失败。"""


class SerialAllocationError(CAError, RuntimeError):
    """序列号台账无法读取、写入或多次抽取仍重复。"""


class StorageError(CAError, RuntimeError):
    """已签发证书归档失败。"""


class SubsystemStateError(RuntimeError):
    """密码子系统在未初始化或已关闭的状态下被使用。"""
