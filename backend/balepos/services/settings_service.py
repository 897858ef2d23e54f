from __future__ import annotations

from typing import Any

from ..extensions import db
from ..models import ShopSettings
from ..models.settings import SHOP_SETTINGS_ID
from ..validation import MAX_AMOUNT_CENTS
from . import mirror_service


MUTABLE_KEYS = {"logo_url", "is_dark_mode", "preset_prices"}


class SettingsError(ValueError):
    pass


class SettingsValidationError(SettingsError):
    pass


def get_settings() -> ShopSettings:
    """The single settings row, created with defaults on first access. Does not commit."""
    settings = db.session.get(ShopSettings, SHOP_SETTINGS_ID)
    if settings is None:
        settings = ShopSettings(id=SHOP_SETTINGS_ID, is_dark_mode=False, data_version=0)
        db.session.add(settings)
        db.session.flush()
    return settings


def _coerce_preset_prices(raw: Any) -> list[int]:
    if not isinstance(raw, list):
        raise SettingsValidationError("preset_prices: expected a list of cents")
    prices = []
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, int):
            raise SettingsValidationError("preset_prices: expected integers")
        if value <= 0 or value > MAX_AMOUNT_CENTS:
            raise SettingsValidationError(f"preset_prices: {value} is out of range")
        prices.append(value)
    # Buttons render in ascending order without duplicates
    return sorted(set(prices))


def update_settings(payload: dict) -> ShopSettings:
    if not isinstance(payload, dict):
        raise SettingsValidationError("Invalid JSON payload")
    unknown = sorted(set(payload) - MUTABLE_KEYS)
    if unknown:
        raise SettingsValidationError(f"Field not allowed: {', '.join(unknown)}")

    settings = get_settings()
    if "logo_url" in payload:
        logo = payload["logo_url"]
        if logo is not None and not isinstance(logo, str):
            raise SettingsValidationError("logo_url: expected string")
        settings.logo_url = (logo or "").strip() or None
    if "is_dark_mode" in payload:
        if not isinstance(payload["is_dark_mode"], bool):
            raise SettingsValidationError("is_dark_mode: expected boolean")
        settings.is_dark_mode = payload["is_dark_mode"]
    if "preset_prices" in payload:
        settings.preset_prices = _coerce_preset_prices(payload["preset_prices"])

    mirror_service.record_upsert(settings)
    db.session.commit()
    return settings


def bump_data_version() -> int:
    """Advance the refresh counter. Does not commit."""
    settings = get_settings()
    settings.data_version = (settings.data_version or 0) + 1
    mirror_service.record_upsert(settings)
    return settings.data_version


def get_expense_categories() -> list[str]:
    return sorted(get_settings().expense_categories or [])


def add_expense_category(name: str) -> list[str]:
    """Register a category (case-sensitive, trimmed); no-op when present. Does not commit."""
    name = (name or "").strip()
    if not name:
        raise SettingsValidationError("category name is required")
    settings = get_settings()
    current = list(settings.expense_categories or [])
    if name not in current:
        settings.expense_categories = sorted([*current, name])
        mirror_service.record_upsert(settings)
    return list(settings.expense_categories)


def set_expense_categories(names: list) -> list[str]:
    if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
        raise SettingsValidationError("categories: expected a list of strings")
    cleaned = sorted({n.strip() for n in names if n.strip()})
    settings = get_settings()
    settings.expense_categories = cleaned
    mirror_service.record_upsert(settings)
    db.session.commit()
    return cleaned
