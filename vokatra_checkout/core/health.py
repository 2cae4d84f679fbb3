"""
Health checks
Liveness answers as long as the process serves requests; readiness also
requires the datastore to answer a trivial query.
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from typing import Any, Callable, Dict
import time
from datetime import datetime
from enum import Enum
import logging

logger = logging.getLogger(__name__)

class HealthStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"

class ServiceHealth:
    def __init__(self, service_name: str, version: str = "1.0.0"):
        self.service_name = service_name
        self.version = version
        self.start_time = time.time()
        self.checks: Dict[str, Callable[[], None]] = {}

    def add_check(self, name: str, probe: Callable[[], None]) -> None:
        """Register a blocking probe; it passes unless it raises."""
        self.checks[name] = probe

    def create_health_router(self) -> APIRouter:
        router = APIRouter(tags=["health"])

        @router.get("/health", status_code=status.HTTP_200_OK)
        async def health_check() -> Dict[str, Any]:
            return {
                "status": HealthStatus.PASS,
                "service": self.service_name,
                "version": self.version,
                "uptime_seconds": time.time() - self.start_time,
                "timestamp": datetime.utcnow().isoformat() + "Z"
            }

        @router.get("/health/live", status_code=status.HTTP_200_OK)
        async def liveness() -> Dict[str, Any]:
            return {"status": "alive"}

        @router.get("/health/ready")
        async def readiness() -> JSONResponse:
            checks = await self._perform_readiness_checks()
            overall_status = self._calculate_overall_status(checks)
            status_code = status.HTTP_200_OK if overall_status == HealthStatus.PASS else status.HTTP_503_SERVICE_UNAVAILABLE
            return JSONResponse(status_code=status_code, content={
                "status": overall_status.value,
                "version": self.version,
                "serviceId": self.service_name,
                "checks": checks,
                "timestamp": datetime.utcnow().isoformat() + "Z"
            })

        return router

    async def _perform_readiness_checks(self) -> Dict[str, Dict[str, Any]]:
        results = {}
        for name, probe in self.checks.items():
            start_time = time.time()
            try:
                await run_in_threadpool(probe)
            except Exception as e:
                logger.error(f"Health check {name} failed: {e}")
                results[name] = {
                    "status": HealthStatus.FAIL.value,
                    "output": str(e),
                    "time": datetime.utcnow().isoformat() + "Z"
                }
                continue
            results[name] = {
                "status": HealthStatus.PASS.value,
                "observedValue": f"{(time.time() - start_time) * 1000:.2f}",
                "observedUnit": "ms",
                "time": datetime.utcnow().isoformat() + "Z"
            }
        return results

    def _calculate_overall_status(self, checks: Dict[str, Dict[str, Any]]) -> HealthStatus:
        statuses = [check.get("status") for check in checks.values()]
        if HealthStatus.FAIL.value in statuses:
            return HealthStatus.FAIL
        if HealthStatus.WARN.value in statuses:
            return HealthStatus.WARN
        return HealthStatus.PASS
