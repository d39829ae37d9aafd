from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import register_routers
from .core.config import settings
from .core.errors import ServiceError
from .core.logging import configure_logging
from .services.job_tracker import JobTracker

configure_logging(settings.LOG_LEVEL)

app = FastAPI(title=settings.APP_NAME, version=__version__)
app.state.job_tracker = JobTracker()

# CORS (모바일/웹 클라이언트 연결)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
async def handle_service_error(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


@app.get("/health")
def health():
    return {"status": "ok"}


register_routers(app)
