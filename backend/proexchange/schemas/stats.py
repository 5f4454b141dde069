from proexchange.schemas.base import CamelModel


class StatsResponse(CamelModel):
    connections: dict[str, int]
    pending_received: int
    applications: dict[str, int]
    received_applications: dict[str, int]
    bench_invitations_pending: int
