from fastapi import APIRouter
from proexchange.api import applications, bench, connections, stats

api_router = APIRouter()
api_router.include_router(connections.router, prefix="/connections", tags=["connections"])
api_router.include_router(applications.jobs_router, prefix="/jobs", tags=["applications"])
api_router.include_router(applications.router, prefix="/applications", tags=["applications"])
api_router.include_router(bench.router, prefix="/firm-bench", tags=["firm-bench"])
api_router.include_router(stats.router, prefix="/stats", tags=["stats"])
