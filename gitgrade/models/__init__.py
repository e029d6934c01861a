from .analysis import AnalysisRecord, AnalysisStatus
from .analysis_job import AnalysisJob, JobStatus
from .payment import PaymentRecord, PaymentStatus
from .throttle import ThrottleCounter

__all__ = [
    "AnalysisRecord",
    "AnalysisStatus",
    "AnalysisJob",
    "JobStatus",
    "PaymentRecord",
    "PaymentStatus",
    "ThrottleCounter",
]
