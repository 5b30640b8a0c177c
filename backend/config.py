import os
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_ACCESS_TOKEN_EXPIRE_DAYS = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_DAYS", 7))

OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", 300))
OTP_SWEEP_INTERVAL_SECONDS = int(os.getenv("OTP_SWEEP_INTERVAL_SECONDS", 60))

FIREBASE_SERVICE_ACCOUNT = os.getenv("FIREBASE_SERVICE_ACCOUNT")

ENVIRONMENT = os.getenv("ENVIRONMENT", "dev")
DEBUG = ENVIRONMENT == "dev"
IS_PRODUCTION = ENVIRONMENT == "prod"


if DATABASE_URL:
    sync_engine = create_engine(DATABASE_URL.replace("postgresql+asyncpg://", "postgresql://"))

    asyncpg_url = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")

    if "?" in asyncpg_url:
        base_url = asyncpg_url.split("?")[0]
    else:
        base_url = asyncpg_url

    asyncpg_url = f"{base_url}?prepared_statement_cache_size=0"

    async_engine = create_async_engine(
        asyncpg_url,
        echo=False,
        pool_pre_ping=False,
        pool_size=5,
        max_overflow=0
    )

    AsyncSessionLocal = sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
else:
    sync_engine = None
    async_engine = None
    AsyncSessionLocal = None

async def get_db():
    if AsyncSessionLocal is None:
        raise Exception("Database not configured")
    async with AsyncSessionLocal() as session:
        yield session

def get_sync_engine():
    if sync_engine is None:
        raise Exception("Database not configured")
    return sync_engine
