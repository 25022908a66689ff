"""로컬 개발 서버. uvicorn app.main:app (development 환경에서만 reload)."""
import asyncio
import os
import sys

if sys.platform == "win32":
    # psycopg/asyncpg는 Windows Proactor 루프 미지원
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

import uvicorn

from app.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=os.environ.get("HOST", "127.0.0.1"),
        port=int(os.environ.get("PORT", "8000")),
        reload=settings.environment == "development",
    )
