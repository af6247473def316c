from fastapi import APIRouter, Depends
from sqlalchemy import text, inspect
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.dependencies import get_db

router = APIRouter(tags=["health"])

@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "marketsync"}

@router.get("/health/db")
async def database_health(db: AsyncSession = Depends(get_db)):
    """Check database connectivity and tables"""
    try:
        await db.execute(text("SELECT 1"))
        tables = await db.run_sync(lambda session: inspect(session.connection()).get_table_names())
        return {
            "status": "healthy",
            "database": "connected",
            "tables_count": len(tables),
            "tables": sorted(tables)
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "database": "error",
            "error": str(e)
        }
