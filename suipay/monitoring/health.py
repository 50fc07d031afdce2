"""
Health checks for liveness/readiness probes.

Checks:
- Database connectivity
- Sui full node reachability
"""
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from suipay.integrations.sui_client import EventSourceError, SuiEventSource

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """
    Health check service for monitoring system dependencies.

    Provides:
    - Database connectivity check
    - Sui node reachability check (only when indexing is enabled)
    - Overall system health status
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sui_source: Optional[SuiEventSource] = None,
    ) -> None:
        self.session_factory = session_factory
        self.sui_source = sui_source

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Raises:
            HealthCheckError: If database check fails
        """
        try:
            async with self.session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()

                return {
                    "status": "healthy",
                    "service": "database",
                    "message": "Database connection successful",
                }

        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}")

    async def check_sui_node(self) -> Dict[str, Any]:
        """
        Check Sui full node reachability.

        Raises:
            HealthCheckError: If the node cannot be reached
        """
        if self.sui_source is None:
            return {
                "status": "healthy",
                "service": "sui",
                "message": "No Sui node configured",
            }

        try:
            chain_id = await self.sui_source.get_chain_identifier()
            return {
                "status": "healthy",
                "service": "sui",
                "message": "Sui node reachable",
                "chain_identifier": chain_id,
            }
        except EventSourceError as e:
            logger.error("sui_health_check_failed", error=str(e))
            raise HealthCheckError(f"Sui node health check failed: {str(e)}")

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks = {}
        all_healthy = True

        for name, check in (("database", self.check_database), ("sui", self.check_sui_node)):
            try:
                checks[name] = await check()
            except HealthCheckError as e:
                checks[name] = {
                    "status": "unhealthy",
                    "service": name,
                    "error": str(e),
                }
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """
        Liveness probe.

        Does not check external dependencies.
        """
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        """Readiness probe: all dependencies must be available."""
        return await self.check_all()
