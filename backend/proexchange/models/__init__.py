from proexchange.models.profile import Profile, Firm, FirmMember
from proexchange.models.connection import ConnectionRequest, make_pair_key
from proexchange.models.job import Job, JobApplication
from proexchange.models.bench import FirmBenchEntry, BenchInvitation

__all__ = [
    "Profile",
    "Firm",
    "FirmMember",
    "ConnectionRequest",
    "make_pair_key",
    "Job",
    "JobApplication",
    "FirmBenchEntry",
    "BenchInvitation",
]
