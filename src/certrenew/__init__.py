"""certrenew - DNS-01 certificate renewal pipeline for ACME certificate authorities."""

from certrenew.expiry import needs_renewal
from certrenew.models import CertificateRecord, RenewalConfig, RenewalOutcome, RenewalResult
from certrenew.orchestrator import RenewalOrchestrator
from certrenew.storage import MemoryStore, PersistenceGateway

__all__ = [
    "CertificateRecord",
    "MemoryStore",
    "PersistenceGateway",
    "RenewalConfig",
    "RenewalOrchestrator",
    "RenewalOutcome",
    "RenewalResult",
    "needs_renewal",
]
__version__ = "0.1.0"
