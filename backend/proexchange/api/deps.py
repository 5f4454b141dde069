from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from proexchange.config import get_settings
from proexchange.database import get_db
from proexchange.services.bench import BenchOrderingService
from proexchange.services.notifications import NotificationDispatcher, get_dispatcher
from proexchange.services.store import RelationshipStore, SqlRelationshipStore
from proexchange.services.workflow import WorkflowEngine


async def get_store(db: AsyncSession = Depends(get_db)) -> RelationshipStore:
    return SqlRelationshipStore(db)


async def get_workflow_engine(
    store: RelationshipStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> WorkflowEngine:
    return WorkflowEngine(store, dispatcher)


async def get_bench_service(
    store: RelationshipStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> BenchOrderingService:
    settings = get_settings()
    return BenchOrderingService(
        store,
        dispatcher,
        priority_base=settings.bench_priority_base,
        priority_step=settings.bench_priority_step,
        invite_expiry_days=settings.invite_expiry_days,
    )
