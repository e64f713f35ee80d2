"""Validate and submit a finished book record, at most once."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

import structlog

from .client import CatalogClient
from .errors import SaveFailure, ValidationError
from .models import CATEGORIES, LOCATIONS, BookRecord, CancelToken, MetadataEntry

log = structlog.get_logger()

SAVED_MESSAGE = "✅ Saved successfully"
SAVE_FAILED_MESSAGE = "❌ Error while saving"


def validate_record(record: BookRecord, detailed: bool = False) -> None:
    """Raise ValidationError naming every missing or malformed field."""
    missing = []
    if not record.isbn:
        missing.append("ISBN")
    if not record.title.strip():
        missing.append("title")
    if detailed and not record.author.strip():
        missing.append("author")
    if not record.price.strip():
        missing.append("price")
    if not record.quantity.strip():
        missing.append("quantity")
    if not record.location:
        missing.append("location")
    if detailed and not record.category:
        missing.append("category")
    if detailed and not record.sub_category:
        missing.append("sub-category")
    if missing:
        raise ValidationError(f"Please fill in: {', '.join(missing)}")

    try:
        price = Decimal(record.price.strip())
    except InvalidOperation:
        raise ValidationError("Price must be a number") from None
    if not price.is_finite() or price < 0:
        raise ValidationError("Price must be zero or more")

    try:
        quantity = int(record.quantity.strip())
    except ValueError:
        raise ValidationError("Quantity must be a whole number") from None
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    if record.location not in LOCATIONS:
        raise ValidationError(f"Unknown location: {record.location}")
    if detailed and record.sub_category not in CATEGORIES.get(record.category, ()):
        raise ValidationError(f"Unknown sub-category for {record.category}: {record.sub_category}")


def build_payload(record: BookRecord, detailed: bool = False) -> dict:
    """Validate the record and map it onto the save endpoint's JSON body."""
    validate_record(record, detailed)
    payload = {
        "isbn": record.isbn,
        "b_title": record.title.strip(),
        "price": float(Decimal(record.price.strip())),
        "quantity": int(record.quantity.strip()),
        "location": record.location,
    }
    if detailed:
        payload["b_author"] = record.author.strip()
        payload["category"] = record.category
        payload["sub_category"] = record.sub_category
    return payload


class CatalogSaver:
    def __init__(self, client: CatalogClient, detailed: bool = False) -> None:
        self.client = client
        self.detailed = detailed

    async def save(self, screen: MetadataEntry, token: CancelToken) -> bool:
        """Submit screen.record. Returns True only on a fresh successful save.

        Triggers while a save is in flight or after one succeeded are ignored.
        """
        if screen.saving or screen.saved:
            log.debug("save_ignored", isbn=screen.record.isbn, saving=screen.saving, saved=screen.saved)
            return False

        try:
            payload = build_payload(screen.record, self.detailed)
        except ValidationError as e:
            screen.message = str(e)
            log.info("save_blocked", isbn=screen.record.isbn, reason=str(e))
            return False

        screen.saving = True
        screen.message = ""
        try:
            await self.client.save(payload)
        except SaveFailure:
            if token.alive:
                screen.saving = False
                screen.message = SAVE_FAILED_MESSAGE
            return False

        if not token.alive:
            log.info("save_completed_after_leave", isbn=payload["isbn"])
            return False
        screen.saving = False
        screen.saved = True
        screen.message = SAVED_MESSAGE
        log.info("book_saved", isbn=payload["isbn"], location=payload["location"], quantity=payload["quantity"])
        return True
