"""Shared record identifier helpers."""

from packages.turnstile_shared.ids.ulid import RECORD_ID_LENGTH, is_record_id, new_record_id

__all__ = ["RECORD_ID_LENGTH", "is_record_id", "new_record_id"]
