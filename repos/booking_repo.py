from typing import List, Optional

from pydantic import ValidationError
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from db.mongodb import id_candidates, translate_mongo_error
from logger.logger import get_logger
from models.booking_model import Booking
from models.enums import BookingType

logger = get_logger("bookings")

def _user_ref(user_id: str):
    # Matches a user reference stored either as a string or as an ObjectId
    return {"$in": id_candidates(user_id)}

class BookingRepository:
    """
    Read-only view of bookings, consulted when suggesting chat contacts.
    """

    def __init__(self, db):
        self.db = db
        self.bookings = db.bookings

    async def exists(self, customer_id: str, provider_id: str, booking_type: BookingType) -> bool:
        """Whether the customer booked the provider for this service type"""
        try:
            booking = await self.bookings.find_one({
                "customer_id": _user_ref(customer_id),
                "provider_id": _user_ref(provider_id),
                "type": booking_type.value
            })
        except PyMongoError as e:
            raise translate_mongo_error(e, "read bookings")
        return booking is not None

    async def find_for_customer(self, customer_id: str) -> List[Booking]:
        """Bookings made by a customer, newest first"""
        return await self._find({"customer_id": _user_ref(customer_id)})

    async def find_for_provider(self, provider_id: str, booking_type: Optional[BookingType] = None) -> List[Booking]:
        """Bookings made with a provider, optionally of one service type, newest first"""
        query = {"provider_id": _user_ref(provider_id)}
        if booking_type is not None:
            query["type"] = booking_type.value
        return await self._find(query)

    async def _find(self, query) -> List[Booking]:
        try:
            documents = await self.bookings.find(query).sort("created_at", DESCENDING).to_list(length=None)
        except PyMongoError as e:
            raise translate_mongo_error(e, "read bookings")

        bookings = []
        for document in documents:
            try:
                bookings.append(Booking.from_document(document))
            except ValidationError as e:
                logger.warning(f"Skipping malformed booking {document.get('_id')}: {e.error_count()} invalid field(s)")
        return bookings
