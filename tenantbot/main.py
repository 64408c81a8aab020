from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import datetime
import logging
from contextlib import asynccontextmanager

from tenantbot.api.v1 import (
    analytics,
    configuration,
    embed_tokens,
    knowledge,
    monitor,
    playground,
    public,
    webchat,
)
from tenantbot.config.settings import get_settings
from tenantbot.core.errors import TenantBotError
from tenantbot.core.supabase_client import initialize_supabase

# Configurar logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

settings = get_settings()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    initialize_supabase()
    logger.info("Supabase client initialized successfully")
    yield
    logger.info("Application shutdown complete")

app = FastAPI(
    title=settings.app_name,
    description="API multi-tenant de chatbots: widget público, panel del tenant, RAG y respuestas de IA",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

# Configurar CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(TenantBotError)
async def tenantbot_error_handler(request: Request, exc: TenantBotError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})

@app.get("/", tags=["general"])
async def root():
    """
    Endpoint de bienvenida que verifica que el servidor está funcionando.
    """
    return {
        "message": f"Bienvenido a {settings.app_name}",
        "version": "1.0.0",
        "status": "online",
        "timestamp": datetime.now().isoformat()
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}

# Incluir routers con sus prefijos
app.include_router(public.router, prefix="/api/v1", tags=["public"])
app.include_router(webchat.router, prefix="/api/v1")
app.include_router(configuration.router, prefix="/api/v1")
app.include_router(embed_tokens.router, prefix="/api/v1")
app.include_router(knowledge.router, prefix="/api/v1")
app.include_router(monitor.router, prefix="/api/v1")
app.include_router(playground.router, prefix="/api/v1")
app.include_router(analytics.router, prefix="/api/v1")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
