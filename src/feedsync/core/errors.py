"""同步错误分类."""

from enum import Enum

import httpx

HTTP_NOT_MODIFIED = 304
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
HTTP_UNPROCESSABLE = 422


class ErrorKind(str, Enum):
    """错误类型."""

    NETWORK = "network_error"
    FORMAT = "format_error"
    PARSE = "parse_error"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    AUTHENTICATION = "authentication_error"
    UNKNOWN = "unknown_error"


class SyncError(Exception):
    """同步错误基类."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str = "", status_code: int | None = None) -> None:
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value
        self.status_code = status_code


class NetworkError(SyncError):
    """网络/IO 错误."""

    kind = ErrorKind.NETWORK


class FormatError(SyncError):
    """无法识别或格式错误的 Feed 文档（远端 422）."""

    kind = ErrorKind.FORMAT


class ParseError(SyncError):
    """文档结构有效，但内容提取失败."""

    kind = ErrorKind.PARSE


class ConflictError(SyncError):
    """远端资源已存在."""

    kind = ErrorKind.CONFLICT


class NotFoundError(SyncError):
    """远端资源不存在."""

    kind = ErrorKind.NOT_FOUND


class AuthenticationError(SyncError):
    """认证失败."""

    kind = ErrorKind.AUTHENTICATION


class UnknownError(SyncError):
    """其他错误."""

    kind = ErrorKind.UNKNOWN


def error_from_status(status_code: int, message: str = "") -> SyncError:
    """根据 HTTP 状态码构造错误."""
    error_cls: type[SyncError]
    if status_code == HTTP_NOT_FOUND:
        error_cls = NotFoundError
    elif status_code == HTTP_CONFLICT:
        error_cls = ConflictError
    elif status_code == HTTP_UNPROCESSABLE:
        error_cls = FormatError
    elif status_code in (HTTP_UNAUTHORIZED, HTTP_FORBIDDEN):
        error_cls = AuthenticationError
    else:
        error_cls = UnknownError
    return error_cls(message or f"HTTP {status_code}", status_code=status_code)


def raise_for_status(response: httpx.Response) -> None:
    """非 2xx 响应转换为对应的 SyncError."""
    if response.is_success:
        return
    raise error_from_status(
        response.status_code,
        f"{response.request.method} {response.request.url} -> HTTP {response.status_code}",
    )


def classify_exception(exc: BaseException) -> SyncError:
    """将底层异常归类.

    抓取和解析发生在同一步骤中，IO 错误与解析错误需要区分。
    """
    if isinstance(exc, SyncError):
        return exc
    if isinstance(exc, httpx.TransportError | OSError):
        return NetworkError(str(exc) or type(exc).__name__)
    return ParseError(str(exc) or type(exc).__name__)
