"""
Agent OS FastAPI Application Entry Point
FastAPI 应用入口
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from agent_os import __version__
from agent_os.config import settings
from agent_os.dependencies import get_fallback_orchestrator
from agent_os.exceptions import AgentOSError, ContextLoadError, ValidationError
from agent_os.routers import context_router, status_router
from agent_os.utils.logger import get_logger

logger = get_logger(__name__)

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address, default_limits=["200/minute"])

# Create FastAPI application / 创建 FastAPI 应用
app = FastAPI(
    title=settings.app_name,
    description="Context Budgeting and Intelligent Fallback / 上下文预算与智能回退",
    version=__version__,
    debug=settings.debug,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ContextLoadError)
async def context_load_error_handler(request: Request, exc: ContextLoadError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(AgentOSError)
async def agent_os_error_handler(request: Request, exc: AgentOSError):
    logger.error("Agent OS error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


# Global exception handler, keeps internal details away from clients
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch all unhandled exceptions and return a safe 500 response."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )

# Configure CORS / 配置跨域
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:8000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers / 注册路由
# Mounted at root for direct use and at "/api" for proxied frontends
routers = [
    status_router,
    context_router,
]

for router in routers:
    app.include_router(router)                  # http://localhost:8000/status
    app.include_router(router, prefix="/api")   # http://localhost:8000/api/status


@app.get("/health")
async def health_check():
    """Health check endpoint / 健康检查"""
    health = get_fallback_orchestrator().detector.health_status()
    return {
        "status": "ok",
        "version": app.version,
        "sources_accessible": settings.sources_root.exists(),
        "health": health.status.value,
    }


@app.on_event("shutdown")
async def on_shutdown():
    """Shutdown event handler / 关闭事件处理"""
    await get_fallback_orchestrator().shutdown()


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting %s on %s:%s", settings.app_name, settings.host, settings.port)
    uvicorn.run(
        "agent_os.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
