"""Address normalization for billing and shipping blocks.

Canonical addresses arrive either with platform field names or with the
localized aliases editors and spreadsheet imports use. Both normalize to
the platform shape, with the country defaulting to DEFAULT_COUNTRY.
"""

from typing import Any, Dict, Optional, Tuple

from catalog_sync.services.mappers.common import get_field, is_blank

DEFAULT_COUNTRY = "CL"

# Canonical field -> accepted source names, first non-blank wins
ADDRESS_ALIASES: Dict[str, Tuple[str, ...]] = {
    "first_name": ("first_name", "nombre"),
    "last_name": ("last_name", "apellido"),
    "company": ("company", "empresa"),
    "address_1": ("address_1", "direccion", "direccion_1"),
    "address_2": ("address_2", "direccion_2"),
    "city": ("city", "ciudad"),
    "state": ("state", "region", "provincia"),
    "postcode": ("postcode", "codigo_postal", "postal_code"),
    "country": ("country", "pais"),
    "email": ("email", "correo_electronico"),
    "phone": ("phone", "telefono"),
}

CONTACT_FIELDS = ("email", "phone")


def pick_alias(raw: Any, names: Tuple[str, ...]) -> str:
    for name in names:
        value = get_field(raw, name)
        if not is_blank(value):
            return str(value).strip()
    return ""


def normalize_address(
    raw: Any,
    include_contact: bool = True,
    default_country: str = DEFAULT_COUNTRY,
) -> Dict[str, str]:
    """Normalize an address given with canonical names or aliases.

    Missing fields become empty strings, the platform's own convention.
    """
    address = {
        field: pick_alias(raw, aliases)
        for field, aliases in ADDRESS_ALIASES.items()
        if include_contact or field not in CONTACT_FIELDS
    }
    if not address["country"]:
        address["country"] = default_country
    return address


def to_billing(raw: Any, default_country: str = DEFAULT_COUNTRY) -> Dict[str, str]:
    return normalize_address(raw, include_contact=True, default_country=default_country)


def to_shipping(raw: Any, default_country: str = DEFAULT_COUNTRY) -> Dict[str, str]:
    """Shipping blocks carry no email or phone."""
    return normalize_address(raw, include_contact=False, default_country=default_country)


def to_canonical_address(external: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
    """Platform address -> canonical JSON, dropping empty fields. None when empty."""
    if not external:
        return None
    address = {
        field: str(external[field]).strip()
        for field in ADDRESS_ALIASES
        if not is_blank(external.get(field))
    }
    return address or None
