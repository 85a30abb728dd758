"""
异常定义模块
日记应用的错误分类，服务端和客户端共用
"""


class DiaryError(Exception):
    """日记应用异常基类，message 为可直接展示给用户的提示"""

    status_code: int = 500
    code: str = "error"

    def __init__(self, message: str = "Something went wrong"):
        super().__init__(message)
        self.message = message


class ValidationError(DiaryError):
    """缺少必填字段或字段不合法"""
    status_code = 400
    code = "validation_error"


class InvalidCredentials(DiaryError):
    """用户名/邮箱或密码错误"""
    status_code = 400
    code = "invalid_credentials"

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class AuthRequired(DiaryError):
    """没有有效会话或令牌"""
    status_code = 401
    code = "auth_required"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class NotFound(DiaryError):
    """要操作的记录不存在"""
    status_code = 404
    code = "not_found"

    def __init__(self, message: str = "Diary entry not found"):
        super().__init__(message)


class NetworkFailure(DiaryError):
    """远程接口不可达"""
    status_code = 503
    code = "network_failure"

    def __init__(self, message: str = "Unable to reach the diary server"):
        super().__init__(message)


# 错误码 -> 异常类，客户端据此还原服务端返回的错误
ERRORS_BY_CODE = {
    error_class.code: error_class
    for error_class in (ValidationError, InvalidCredentials, AuthRequired, NotFound, NetworkFailure)
}
