from .config import CONFIG
from .errors import (
    DeviceReadFailed,
    InitializationFailed,
    MeterError,
    PermissionDenied,
    SessionBusy,
    TransientReadError,
    UnexpectedFailure,
)
from .level_estimator import estimate_level
from .session import DecibelReading, SamplingSession, SessionConfig, SessionHandle, SessionState
from .sinks import CallbackReadingSink, NullReadingSink, QueueReadingSink, ReadingSink

__version__ = CONFIG.VERSION
