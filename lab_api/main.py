from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware
from .routers import health, spawn, web_shell
from .config import get_settings
import logging

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Lab API")

# Handle X-Forwarded-* headers from the ingress in front of the service
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

cors_origins = settings.cors_origin_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    # Credentials cannot be combined with a wildcard origin
    allow_credentials="*" not in cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"Incoming request: {request.method} {request.url.path}")
    try:
        response = await call_next(request)
        logger.info(f"Response status: {response.status_code}")
        return response
    except Exception as e:
        logger.error(f"Request failed: {str(e)}")
        raise


@app.on_event("startup")
async def startup():
    # Build the shared lab manager (and Kubernetes client) before serving traffic.
    # A missing cluster configuration raises RuntimeError and aborts startup.
    from .services.lab_manager import get_lab_manager
    lab_manager = get_lab_manager()
    logger.info(f"Lab API ready - namespace: {lab_manager.namespace}, webshell: {settings.webshell_base_url}")


app.include_router(health.router, tags=["health"])
app.include_router(spawn.router, prefix="/spawn", tags=["spawn"])
app.include_router(web_shell.router, prefix=settings.webshell_path, tags=["webshell"])


def run():
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
