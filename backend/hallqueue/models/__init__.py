from .persons import Person
from .catalog import ServiceType
from .requests import DocumentRequest, DocumentRequestItem
from .queue import QueueTicket
from .sequences import SequenceCounter
from .statistics import StatisticsSnapshot
from .audit import AuditEvent

__all__ = [
    'Person',
    'ServiceType',
    'DocumentRequest', 'DocumentRequestItem',
    'QueueTicket',
    'SequenceCounter',
    'StatisticsSnapshot',
    'AuditEvent',
]
