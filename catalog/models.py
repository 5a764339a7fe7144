"""Data models for the event catalog."""
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union


DEFAULT_IMAGE_URL = 'https://images.unsplash.com/photo-1540575467063-178a50c2df87'

SUGGESTED_CATEGORIES = (
    'Conference',
    'Workshop',
    'Seminar',
    'Webinar',
    'Music Concert',
    'Education',
    'Networking Event',
    'Entertainment',
    'Charity',
    'Speaking',
    'Other',
)


@dataclass(frozen=True)
class EventRecord:
    """Event as stored by the remote store."""
    id: str
    title: str
    description: str
    date: str
    location: str
    category: str
    image_url: Optional[str]
    price: float
    max_attendees: Optional[int]
    organizer_id: str
    created_at: str
    updated_at: str

    @property
    def display_image_url(self) -> str:
        return self.image_url or DEFAULT_IMAGE_URL

    @property
    def is_virtual(self) -> bool:
        """True when the location holds a meeting link instead of a venue."""
        location = self.location.strip().lower()
        return location.startswith('http://') or location.startswith('https://')

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Inserted:
    record: EventRecord


@dataclass(frozen=True)
class Updated:
    """Partial or full row; ``changes['id']`` names the record."""
    changes: Mapping[str, Any]


@dataclass(frozen=True)
class Deleted:
    event_id: str


ChangeEvent = Union[Inserted, Updated, Deleted]


@dataclass(frozen=True)
class FilterCriteria:
    """Search text and category selected by the user."""
    query: str = ''
    category: Optional[str] = None


class ViewStatus(str, Enum):
    IDLE = 'idle'
    LOADING = 'loading'
    READY = 'ready'
    FAILED = 'failed'


@dataclass(frozen=True)
class CatalogView:
    """Read model handed to the rendering layer."""
    status: ViewStatus
    visible_records: Tuple[EventRecord, ...] = ()
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status.value,
            'count': len(self.visible_records),
            'events': [record.to_dict() for record in self.visible_records],
            'error': self.error
        }


@dataclass(frozen=True)
class Registration:
    """Tickets booked by one user for one event."""
    id: str
    event_id: str
    user_id: str
    ticket_quantity: int
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class UserEvents:
    """Events a user organizes and events they hold tickets for."""
    created: List[EventRecord] = field(default_factory=list)
    registered: List[Tuple[EventRecord, int]] = field(default_factory=list)
