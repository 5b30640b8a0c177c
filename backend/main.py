from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Depends, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from mangum import Mangum
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from config import get_db, IS_PRODUCTION, OTP_TTL_SECONDS, OTP_SWEEP_INTERVAL_SECONDS
from utils.otp_store import OtpStore
from utils.response_helpers import register_exception_handlers
import logging

from routers.auth.auth import router as auth_router
from routers.users.users import router as users_router
from routers.categories.categories import router as categories_router
from routers.demands.demands import router as demands_router
from routers.offers.offers import router as offers_router
from routers.reviews.reviews import router as reviews_router
from routers.notifications.notifications import router as notifications_router
from routers.settings.settings import router as settings_router
from routers.charity.charity import router as charity_router
from routers.admin.admin import router as admin_router
from routers.admin.moderation import router as moderation_router
from routers.admin.broadcasts import router as broadcasts_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

API_PREFIX = "/api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.otp_store.start()
    yield
    await app.state.otp_store.stop()


app = FastAPI(
    title="Ihale API",
    description="Service marketplace API: receivers post demands, providers compete with offers.",
    version="1.0.0",
    root_path="/Prod" if IS_PRODUCTION else "",
    docs_url="/apidocs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    servers=[
        {"url": "https://your-aws-api.execute-api.region.amazonaws.com/Prod", "description": "Production Server"},
        {"url": "http://localhost:8000", "description": "Local Development Server"},
    ],
)

app.state.otp_store = OtpStore(OTP_TTL_SECONDS, OTP_SWEEP_INTERVAL_SECONDS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth_router, prefix=API_PREFIX)
app.include_router(users_router, prefix=API_PREFIX)
app.include_router(categories_router, prefix=API_PREFIX)
app.include_router(demands_router, prefix=API_PREFIX)
app.include_router(offers_router, prefix=API_PREFIX)
app.include_router(reviews_router, prefix=API_PREFIX)
app.include_router(notifications_router, prefix=API_PREFIX)
app.include_router(settings_router, prefix=API_PREFIX)
app.include_router(charity_router, prefix=API_PREFIX)
app.include_router(admin_router, prefix=API_PREFIX)
app.include_router(moderation_router, prefix=API_PREFIX)
app.include_router(broadcasts_router, prefix=API_PREFIX)


@app.get(f"{API_PREFIX}/health", tags=["Health"])
async def health_check(db: AsyncSession = Depends(get_db)):
    """Liveness plus a round trip to the database"""
    try:
        await db.execute(text("SELECT 1"))
        return {"success": True, "status": "ok", "database": "connected"}
    except Exception as e:
        logger.error(f"Health check failed: {str(e)}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"success": False, "status": "error", "database": "disconnected"}
        )


@app.get("/docs", include_in_schema=False)
async def api_documentation(request: Request):
    openapi_url = "/Prod/openapi.json" if IS_PRODUCTION else "/openapi.json"

    return HTMLResponse(
        f"""
<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1, shrink-to-fit=no">
    <title>Ihale API DOCS</title>

    <script src="https://unpkg.com/@stoplight/elements/web-components.min.js"></script>
    <link rel="stylesheet" href="https://unpkg.com/@stoplight/elements/styles.min.css">
  </head>
  <body>

    <elements-api
      apiDescriptionUrl="{openapi_url}"
      router="hash"
      theme="dark"
    />

  </body>
</html>"""
    )


@app.get("/", response_class=HTMLResponse)
def home():
    """Landing page with links to the API documentation"""
    return """
    <html>
      <head>
        <title>Ihale API</title>
        <style>
          body { font-family: Arial, sans-serif; margin: 40px; background-color: #f8f9fa; }
          h1 { color: #333; }
          ul { list-style-type: none; padding: 0; }
          li { margin: 10px 0; }
          a { color: #0066cc; text-decoration: none; }
          a:hover { text-decoration: underline; }
          hr { margin: 20px 0; }
        </style>
      </head>
      <body>
        <h1>Welcome to Ihale API</h1>
        <hr>
        <ul>
          <li><a href="/docs">Stoplight API Documentation</a></li>
          <li><a href="/redoc">Redoc API Documentation</a></li>
          <li><a href="/apidocs">Swagger API Documentation</a></li>
          <li><a href="/openapi.json">OpenAPI Specification</a></li>
          <li><a href="/api/health">Health Check</a></li>
        </ul>
      </body>
    </html>
    """


handler = Mangum(app)
