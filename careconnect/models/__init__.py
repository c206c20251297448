from .appointment import Appointment
from .consultation import Consultation
from .directory import Doctor, Pharmacy
from .document import MedicalDocument
from .error_log import ErrorLog
from .rate_limit import RateLimitRecord
from .security_log import SecurityLog
from .user import User

__all__ = [
    "Appointment",
    "Consultation",
    "Doctor",
    "ErrorLog",
    "MedicalDocument",
    "Pharmacy",
    "RateLimitRecord",
    "SecurityLog",
    "User",
]
