"""
E-Diary 服务端主入口
启动FastAPI应用，提供认证和日记的REST接口
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from ediary.api import auth, diaries
from ediary.utils.config import settings
from ediary.utils.errors import DiaryError
from ediary.utils.logger import logger
from ediary.utils.database import db

# 创建FastAPI应用
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug
)

app.include_router(auth.router)
app.include_router(diaries.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """记录每个请求的方法和路径"""
    logger.info(f"{request.method} {request.url.path}")
    return await call_next(request)


@app.exception_handler(DiaryError)
async def diary_error_handler(request: Request, exc: DiaryError):
    """业务异常转换为带提示信息的JSON响应"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} 失败: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message, "code": exc.code})


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    """未预期的异常"""
    logger.error(f"{request.method} {request.url.path} 出错: {exc}")
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


@app.on_event("startup")
async def startup_event():
    """应用启动时执行"""
    logger.info(f"{settings.app_name} v{settings.app_version} 启动成功")
    logger.info(f"数据库路径: {db.db_path}")


@app.on_event("shutdown")
async def shutdown_event():
    """应用关闭时执行"""
    logger.info(f"{settings.app_name} 已关闭")


@app.get("/")
async def root():
    """根路径，返回应用信息"""
    return {
        "app_name": settings.app_name,
        "version": settings.app_version,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """健康检查接口"""
    return {"status": "healthy", "code": 0}


if __name__ == "__main__":
    import uvicorn

    logger.info(f"启动服务器: {settings.host}:{settings.port}")
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
