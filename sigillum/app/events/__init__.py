from .models import CertificationEvent, CertificationEventType
from .emitter import (
    CertificationEventEmitter,
    LoggingEventEmitter,
    NullEventEmitter,
)

__all__ = [
    "CertificationEvent",
    "CertificationEventType",
    "CertificationEventEmitter",
    "LoggingEventEmitter",
    "NullEventEmitter",
]
