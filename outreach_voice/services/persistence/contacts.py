"""Contact persistence service."""
from typing import Any, Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from outreach_voice.db.models import Contact

CONTACT_FIELDS = ("name", "phone", "email", "whatsapp_number", "company", "notes")


class ContactPersistenceService:
    """Service for reading and updating prospect contacts."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_contact(self, contact_id: str) -> Optional[Contact]:
        return await self.db.get(Contact, contact_id)

    async def get_contact_by_phone(self, phone: str) -> Optional[Contact]:
        result = await self.db.execute(select(Contact).where(Contact.phone == phone))
        return result.scalars().first()

    async def create_contact(self, name: str, phone: str, **fields: Any) -> Contact:
        """Create a new contact."""
        contact = Contact(name=name, phone=phone)
        for key, value in fields.items():
            if key in CONTACT_FIELDS and value:
                setattr(contact, key, value)
        self.db.add(contact)
        await self.db.commit()
        await self.db.refresh(contact)
        return contact

    async def update_contact(self, contact_id: str, updates: Dict[str, Any]) -> Optional[Contact]:
        """Apply non-empty updates to a contact. Empty values never erase stored data."""
        contact = await self.get_contact(contact_id)
        if not contact:
            return None

        changed = False
        for key, value in updates.items():
            if key not in CONTACT_FIELDS or value in (None, ""):
                continue
            if getattr(contact, key) != value:
                setattr(contact, key, value)
                changed = True

        if changed:
            await self.db.commit()
            await self.db.refresh(contact)
        return contact
