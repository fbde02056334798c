from careflow.models.appointment import AppointmentRecord
from careflow.models.diagnosis import ConversationTurnRecord, DiagnosisRecord, RequiredTestRecord
from careflow.models.notification import NotificationRecord
from careflow.models.report import ReportRecord
from careflow.models.schedule import DoctorAvailability

__all__ = [
    "DiagnosisRecord",
    "ConversationTurnRecord",
    "RequiredTestRecord",
    "AppointmentRecord",
    "ReportRecord",
    "DoctorAvailability",
    "NotificationRecord",
]
