from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.receipts import router as receipts_router
from .core.config import settings
from .core.logging import configure_logging
from .errors import AppError, log_error
from .routers import router

configure_logging(settings.LOG_LEVEL)

app = FastAPI(title=settings.APP_NAME, version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,  # 개발 편의. 운영에서는 도메인 제한 권장
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Total-Count"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    log_error(exc, f"{request.method} {request.url.path}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(router, prefix="/api")
app.include_router(receipts_router, prefix="/api")
