"""
Eligibility of users as new chat contacts.

The gate only decides who is *suggested* when starting a conversation.
Existing conversations are never re-checked: once two users talk, they keep
their conversation even if the booking behind it is cancelled.
"""
from enum import Enum
from typing import Dict, List, Optional

from models.booking_model import Booking
from models.enums import BookingType, Role
from models.message_model import ChatContact
from models.users_model import UserProfile
from repos.booking_repo import BookingRepository
from repos.user_repo import UserRepository
from logger.logger import get_logger
from utils.errors import ChatError, require_identity

logger = get_logger("access_gate")

SUPPORT_SUFFIX = " (Customer Support)"

class Eligibility(str, Enum):
    ALWAYS = "always"
    CUSTOMER_BOOKED_TARGET = "customer_booked_target"  # viewer is the customer
    TARGET_BOOKED_PROVIDER = "target_booked_provider"  # viewer is the provider
    NEVER = "never"

def eligibility_rule(viewer_role: Optional[Role], target_role: Optional[Role]) -> Eligibility:
    """Rule for a (viewer, target) role pair; support agents talk to anyone"""
    if viewer_role == Role.AGENT or target_role == Role.AGENT:
        return Eligibility.ALWAYS
    if viewer_role is None or target_role is None:
        return Eligibility.NEVER
    if viewer_role.is_customer and target_role.is_provider:
        return Eligibility.CUSTOMER_BOOKED_TARGET
    if viewer_role.is_provider and target_role.is_customer:
        return Eligibility.TARGET_BOOKED_PROVIDER
    return Eligibility.NEVER

class AccessGate:
    def __init__(self, user_repo: UserRepository, booking_repo: BookingRepository, unknown_label: str = "Unknown"):
        self.user_repo = user_repo
        self.booking_repo = booking_repo
        self.unknown_label = unknown_label

    async def can_chat_with(self, viewer_id: str, target_id: str) -> bool:
        """
        Whether ``target_id`` may be offered to ``viewer_id`` as a new contact.
        The booking must be of the provider's own type, so an academy booking
        never unlocks a clinic.
        """
        require_identity(viewer_id)
        if not target_id or viewer_id == target_id:
            return False

        try:
            profiles = await self.user_repo.get_profiles([viewer_id, target_id])
            viewer, target = profiles.get(viewer_id), profiles.get(target_id)
            if target is None:
                return False
            viewer_role = viewer.role if viewer else None
            target_role = target.role if target else None

            rule = eligibility_rule(viewer_role, target_role)
            if rule == Eligibility.ALWAYS:
                return True
            if rule == Eligibility.CUSTOMER_BOOKED_TARGET:
                return await self.booking_repo.exists(
                    customer_id=viewer_id,
                    provider_id=target_id,
                    booking_type=BookingType.for_provider(target_role)
                )
            if rule == Eligibility.TARGET_BOOKED_PROVIDER:
                return await self.booking_repo.exists(
                    customer_id=target_id,
                    provider_id=viewer_id,
                    booking_type=BookingType.for_provider(viewer_role)
                )
            return False
        except ChatError as e:
            logger.warning(f"Eligibility check {viewer_id} -> {target_id} failed: {e.message}")
            return False

    async def chattable_contacts(self, viewer_id: str) -> List[ChatContact]:
        """Users the viewer may start a conversation with"""
        require_identity(viewer_id)
        try:
            viewer = await self.user_repo.get_profile(viewer_id)
            role = viewer.role if viewer else None

            if role is None:
                return []
            if role.is_customer:
                contacts = await self._booked_providers(viewer_id)
            elif role.is_provider:
                contacts = await self._booking_customers(viewer_id, role)
            else:
                return await self._everyone_for_agent(viewer_id)

            contacts.extend(await self._support_agents(viewer_id))
            return contacts
        except ChatError as e:
            logger.warning(f"Could not list chat contacts for {viewer_id}: {e.message}")
            return []

    async def _booked_providers(self, customer_id: str) -> List[ChatContact]:
        # Bookings arrive newest first, so the first one seen per provider is the latest
        latest: Dict[str, Booking] = {}
        for booking in await self.booking_repo.find_for_customer(customer_id):
            if booking.type is not None:
                latest.setdefault(booking.provider_id, booking)

        profiles = await self.user_repo.get_profiles(latest)
        contacts = []
        for provider_id, booking in latest.items():
            profile = profiles.get(provider_id)
            # The provider must actually be of the booked type
            if profile is None or profile.role is None or profile.role.value != booking.type.value:
                continue
            contacts.append(self._contact(profile, booking))
        return contacts

    async def _booking_customers(self, provider_id: str, role: Role) -> List[ChatContact]:
        latest: Dict[str, Booking] = {}
        for booking in await self.booking_repo.find_for_provider(provider_id, BookingType.for_provider(role)):
            latest.setdefault(booking.customer_id, booking)

        profiles = await self.user_repo.get_profiles(latest)
        contacts = []
        for customer_id, booking in latest.items():
            profile = profiles.get(customer_id)
            if profile is None or profile.role is None or not profile.role.is_customer:
                continue
            contacts.append(self._contact(profile, booking))
        return contacts

    async def _everyone_for_agent(self, agent_id: str) -> List[ChatContact]:
        users = await self.user_repo.find_by_roles([Role.PLAYER, Role.PARENT, Role.ACADEMY, Role.CLINIC])
        return [self._contact(profile) for profile in users if profile.id != agent_id]

    async def _support_agents(self, viewer_id: str) -> List[ChatContact]:
        agents = await self.user_repo.find_by_roles([Role.AGENT])
        contacts = []
        for agent in agents:
            if agent.id == viewer_id:
                continue
            contact = self._contact(agent)
            contact.name = f"{contact.name}{SUPPORT_SUFFIX}"
            contacts.append(contact)
        return contacts

    def _contact(self, profile: UserProfile, booking: Optional[Booking] = None) -> ChatContact:
        return ChatContact(
            user_id=profile.id,
            name=profile.display_name(self.unknown_label),
            photo=profile.profile_photo,
            role=profile.role,
            booking_id=booking.id if booking else None,
            last_booking_at=booking.created_at if booking else None
        )
