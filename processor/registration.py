"""Ticket registration and per-user event listings."""
import logging
from typing import Any, Iterable

from catalog.exceptions import (
    AlreadyRegisteredError,
    CapacityExceededError,
    InvalidTicketQuantityError,
)
from catalog.models import EventRecord, Registration, UserEvents

logger = logging.getLogger(__name__)


def total_amount(event: EventRecord, ticket_quantity: int) -> float:
    """Price of ``ticket_quantity`` tickets, rounded to cents."""
    return round(event.price * ticket_quantity, 2)


class RegistrationService:
    """
    Registers users for events against a remote store.

    The store must provide ``list_registrations(event_id=, user_id=)``
    and ``insert_registration(event_id, user_id, ticket_quantity)``.
    Capacity is checked against the sum of ticket quantities already
    registered, not against the catalog.
    """

    MIN_TICKETS = 1
    MAX_TICKETS = 10

    def __init__(self, store: Any):
        self.store = store

    def register(
        self,
        event: EventRecord,
        user_id: str,
        ticket_quantity: int
    ) -> Registration:
        """
        Book tickets for a user.

        Args:
            event: Event to register for
            user_id: Signed-in user
            ticket_quantity: Number of tickets (1-10)

        Returns:
            The stored Registration

        Raises:
            InvalidTicketQuantityError: Quantity outside 1-10
            AlreadyRegisteredError: User already holds a registration
            CapacityExceededError: Not enough tickets left
        """
        if not self.MIN_TICKETS <= ticket_quantity <= self.MAX_TICKETS:
            raise InvalidTicketQuantityError(
                f"Ticket quantity must be between {self.MIN_TICKETS} "
                f"and {self.MAX_TICKETS}"
            )

        if self.store.list_registrations(event_id=event.id, user_id=user_id):
            raise AlreadyRegisteredError('You are already registered for this event')

        if event.max_attendees:
            registered = sum(
                registration.ticket_quantity
                for registration in self.store.list_registrations(event_id=event.id)
            )
            if registered + ticket_quantity > event.max_attendees:
                logger.info(
                    f"Event {event.id} has {event.max_attendees - registered} "
                    f"tickets left, {ticket_quantity} requested"
                )
                raise CapacityExceededError('Not enough tickets available')

        registration = self.store.insert_registration(event.id, user_id, ticket_quantity)
        logger.info(
            f"Registered user {user_id} for event {event.id} "
            f"({ticket_quantity} tickets)"
        )
        return registration

    def user_events(self, user_id: str, catalog: Iterable[EventRecord]) -> UserEvents:
        """
        Collect the events a user created and the ones they registered for.

        Args:
            user_id: Signed-in user
            catalog: Current catalog snapshot, newest first

        Returns:
            UserEvents with created events newest first
        """
        records = list(catalog)
        by_id = {record.id: record for record in records}

        result = UserEvents(
            created=[record for record in records if record.organizer_id == user_id]
        )

        for registration in self.store.list_registrations(user_id=user_id):
            record = by_id.get(registration.event_id)
            if record is None:
                logger.debug(
                    f"Skipping registration {registration.id} for missing event "
                    f"{registration.event_id}"
                )
                continue
            result.registered.append((record, registration.ticket_quantity))

        return result
