"""Local mirrors of upstream PMS entities and their field mapping.

Mapping rules:
- Missing scalar fields fall back to "", 0 or [] rather than None.
- Nested objects (guest, listing, address, money, guests) that are absent
  or null are treated as empty; present but not an object is rejected.
- Date fields must parse; they are never replaced with the current time.
- Numbers must fit a DynamoDB number; counts must not be negative.
- The full upstream payload is kept alongside the mapped fields as JSON text.
"""

import json
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import ErrorCode, ValidationError

DEFAULT_PROPERTY_NAME = "Unnamed Property"
DEFAULT_GUEST_NAME = "Unknown Guest"
DEFAULT_CHANNEL = "direct"
DEFAULT_CURRENCY = "USD"

# DynamoDB numbers: 38 significant digits, magnitude 1E-130 to 9.99E+125
MAX_NUMBER_DIGITS = 38
MIN_NUMBER_EXPONENT = -130
MAX_NUMBER_EXPONENT = 125


# === Field normalization helpers ===


def _object(payload: dict[str, Any], key: str) -> dict[str, Any]:
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"'{key}' must be an object", field=key)
    return value


def _text(value: Any, default: str = "") -> str:
    if value is None or isinstance(value, (dict, list, bool)):
        return default
    text = str(value).strip()
    return text or default


def _first_text(*values: Any, default: str = "") -> str:
    for value in values:
        text = _text(value)
        if text:
            return text
    return default


def _number(value: Any, field: str, minimum: Decimal | None = None) -> Decimal:
    if value is None or value == "":
        return Decimal(0)
    if isinstance(value, bool):
        raise ValidationError(f"'{field}' must be a number", field=field)
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValidationError(f"'{field}' must be a number", field=field) from e
    if not number.is_finite():
        raise ValidationError(f"'{field}' must be a finite number", field=field)
    if minimum is not None and number < minimum:
        raise ValidationError(f"'{field}' must be at least {minimum}", field=field)
    return _storable(number, field)


def _storable(number: Decimal, field: str) -> Decimal:
    """Check the value fits a DynamoDB number; surplus trailing zeros are dropped."""
    if number.is_zero():
        return Decimal(0)
    sign, digits, exponent = number.as_tuple()
    significant = "".join(map(str, digits)).rstrip("0")
    trailing = len(digits) - len(significant)
    compact = Decimal((sign, tuple(int(d) for d in significant), int(exponent) + trailing))
    if len(significant) > MAX_NUMBER_DIGITS:
        raise ValidationError(
            f"'{field}' has more than {MAX_NUMBER_DIGITS} significant digits", field=field
        )
    if not MIN_NUMBER_EXPONENT <= compact.adjusted() <= MAX_NUMBER_EXPONENT:
        raise ValidationError(f"'{field}' is out of range", field=field)
    return number if len(digits) <= MAX_NUMBER_DIGITS else compact


def _integer(value: Any, field: str) -> int:
    """Non-negative count; fractions are truncated."""
    number = int(_number(value, field, minimum=Decimal(0)))
    if number >= 10**MAX_NUMBER_DIGITS:
        raise ValidationError(f"'{field}' is out of range", field=field)
    return number


def _optional_number(
    value: Any, field: str, lower: Decimal, upper: Decimal
) -> Decimal | None:
    if value is None or value == "":
        return None
    number = _number(value, field)
    if not lower <= number <= upper:
        raise ValidationError(f"'{field}' must be between {lower} and {upper}", field=field)
    return number


def _string_list(value: Any, field: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"'{field}' must be a list", field=field)
    return [_text(v) for v in value if _text(v)]


def _image_urls(value: Any, field: str) -> list[str]:
    """Image URLs from a list of URL strings or picture objects."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"'{field}' must be a list", field=field)
    urls = []
    for image in value:
        if isinstance(image, dict):
            url = _first_text(image.get("thumbnail"), image.get("regular"), image.get("url"))
        else:
            url = _text(image)
        if url:
            urls.append(url)
    return urls


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return str(value)


def raw_json(payload: dict[str, Any]) -> str:
    """Serialize an upstream payload as stored in the mirror's *_data field."""
    return json.dumps(payload, default=_json_default, ensure_ascii=False)


def _raw_payload(value: Any) -> dict[str, Any]:
    if not value:
        return {}
    if isinstance(value, dict):
        return value
    parsed = json.loads(value, parse_float=Decimal)
    return parsed if isinstance(parsed, dict) else {}


def _build(model: type[BaseModel], **fields: Any) -> Any:
    """Construct a mirror model, reporting constraint failures as ValidationError."""
    try:
        return model(**fields)
    except PydanticValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or None
        raise ValidationError(f"'{field or 'payload'}': {error['msg']}", field=field) from e




def parse_timestamp(value: Any, field: str) -> datetime:
    """Parse an upstream date or datetime into an aware UTC datetime.

    Accepts ISO 8601 dates ("2025-07-15") and datetimes, with or without a
    trailing "Z". Date-only values become midnight UTC.

    Raises:
        ValidationError: If the value is missing or malformed.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"'{field}' is required", field=field)
    if not isinstance(value, str):
        raise ValidationError(f"'{field}' must be an ISO 8601 string", field=field)

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"

    try:
        if len(text) == 10:
            parsed_date = date.fromisoformat(text)
            return datetime(
                parsed_date.year, parsed_date.month, parsed_date.day, tzinfo=timezone.utc
            )
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ValidationError(
            f"'{field}' is not a valid date: {value!r}", field=field
        ) from e

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _require_id(payload: dict[str, Any], entity_id: str) -> str:
    if not entity_id or not entity_id.strip():
        raise ValidationError(
            "entity id is required", code=ErrorCode.MISSING_ENTITY_ID, field="id"
        )
    payload_id = _first_text(payload.get("id"), payload.get("_id"))
    if payload_id and payload_id != entity_id:
        raise ValidationError(
            f"payload id {payload_id!r} does not match entity id {entity_id!r}",
            code=ErrorCode.MISSING_ENTITY_ID,
            field="id",
        )
    return entity_id.strip()



# === Mirror models ===


class ExternalProperty(BaseModel):
    """Local mirror of an upstream property (listing)."""

    upstream_id: str = Field(..., description="Upstream property identifier (unique)")
    name: str = Field(default=DEFAULT_PROPERTY_NAME)
    address: str = Field(default="")
    city: str = Field(default="")
    state: str = Field(default="")
    zipcode: str = Field(default="")
    country: str = Field(default="")
    latitude: Decimal | None = Field(default=None, ge=-90, le=90)
    longitude: Decimal | None = Field(default=None, ge=-180, le=180)
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: Decimal = Field(default=Decimal(0), ge=0)
    beds: int = Field(default=0, ge=0)
    accommodates: int = Field(default=0, ge=0)
    amenities: list[str] = Field(default_factory=list)
    property_type: str = Field(default="")
    room_type: str = Field(default="")
    listing_url: str = Field(default="")
    picture: str = Field(default="", description="Thumbnail of the main picture")
    images: list[str] = Field(default_factory=list)
    property_data: dict[str, Any] = Field(
        default_factory=dict, description="Upstream payload as last received"
    )
    ical_url: str | None = Field(
        default=None,
        description="Locally configured calendar feed; never set from webhooks",
    )
    created_at: datetime | None = Field(default=None)
    updated_at: datetime | None = Field(default=None)

    @classmethod
    def from_upstream(cls, payload: dict[str, Any], entity_id: str) -> "ExternalProperty":
        """Map a property webhook payload onto the local model.

        Raises:
            ValidationError: If the id is missing or a field is malformed.
        """
        upstream_id = _require_id(payload, entity_id)
        address = _object(payload, "address")
        location = _object(address, "location")
        picture = _object(payload, "picture")

        return _build(
            cls,
            upstream_id=upstream_id,
            name=_first_text(
                payload.get("nickname"), payload.get("title"), default=DEFAULT_PROPERTY_NAME
            ),
            address=_text(address.get("full")),
            city=_text(address.get("city")),
            state=_text(address.get("state")),
            zipcode=_text(address.get("zipcode")),
            country=_text(address.get("country")),
            latitude=_optional_number(
                location.get("lat"), "address.location.lat", Decimal(-90), Decimal(90)
            ),
            longitude=_optional_number(
                location.get("lng"), "address.location.lng", Decimal(-180), Decimal(180)
            ),
            bedrooms=_integer(payload.get("bedrooms"), "bedrooms"),
            bathrooms=_number(payload.get("bathrooms"), "bathrooms", minimum=Decimal(0)),
            beds=_integer(payload.get("beds"), "beds"),
            accommodates=_integer(payload.get("accommodates"), "accommodates"),
            amenities=_string_list(payload.get("amenities"), "amenities"),
            property_type=_text(payload.get("propertyType")),
            room_type=_text(payload.get("roomType")),
            listing_url=_text(payload.get("listingUrl")),
            picture=_first_text(picture.get("thumbnail"), picture.get("regular")),
            images=_image_urls(payload.get("images"), "images"),
            property_data=payload,
        )

    def mirrored_fields(self) -> dict[str, Any]:
        """Attributes written on every upsert (excludes local-only fields)."""
        return {
            "name": self.name,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zipcode": self.zipcode,
            "country": self.country,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "beds": self.beds,
            "accommodates": self.accommodates,
            "amenities": self.amenities,
            "property_type": self.property_type,
            "room_type": self.room_type,
            "listing_url": self.listing_url,
            "picture": self.picture,
            "images": self.images,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "property_data": raw_json(self.property_data),
        }

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "ExternalProperty":
        return cls(
            upstream_id=item["upstream_id"],
            name=item.get("name", DEFAULT_PROPERTY_NAME),
            address=item.get("address", ""),
            city=item.get("city", ""),
            state=item.get("state", ""),
            zipcode=item.get("zipcode", ""),
            country=item.get("country", ""),
            latitude=_optional_decimal(item.get("latitude")),
            longitude=_optional_decimal(item.get("longitude")),
            bedrooms=int(item.get("bedrooms", 0)),
            bathrooms=Decimal(str(item.get("bathrooms", 0))),
            beds=int(item.get("beds", 0)),
            accommodates=int(item.get("accommodates", 0)),
            amenities=list(item.get("amenities", [])),
            property_type=item.get("property_type", ""),
            room_type=item.get("room_type", ""),
            listing_url=item.get("listing_url", ""),
            picture=item.get("picture", ""),
            images=list(item.get("images", [])),
            property_data=_raw_payload(item.get("property_data")),
            ical_url=item.get("ical_url") or None,
            created_at=_optional_datetime(item.get("created_at")),
            updated_at=_optional_datetime(item.get("updated_at")),
        )


class ExternalReservation(BaseModel):
    """Local mirror of an upstream reservation."""

    upstream_id: str = Field(..., description="Upstream reservation identifier (unique)")
    property_upstream_id: str = Field(default="", description="Upstream id of the listing")
    guest_id: str = Field(default="", description="Upstream id of the guest")
    guest_name: str = Field(default=DEFAULT_GUEST_NAME)
    guest_email: str = Field(default="")
    guest_phone: str = Field(default="")
    check_in: datetime = Field(..., description="Check-in instant (UTC)")
    check_out: datetime = Field(..., description="Check-out instant (UTC)")
    status: str = Field(default="unknown")
    channel: str = Field(default=DEFAULT_CHANNEL)
    confirmation_code: str = Field(default="")
    total_price: Decimal = Field(default=Decimal(0))
    currency: str = Field(default=DEFAULT_CURRENCY)
    guest_count: int = Field(default=0, ge=0)
    adults: int = Field(default=0, ge=0)
    children: int = Field(default=0, ge=0)
    infants: int = Field(default=0, ge=0)
    pets: int = Field(default=0, ge=0)
    reservation_data: dict[str, Any] = Field(
        default_factory=dict, description="Upstream payload as last received"
    )
    created_at: datetime | None = Field(default=None)
    updated_at: datetime | None = Field(default=None)

    @classmethod
    def from_upstream(
        cls, payload: dict[str, Any], entity_id: str
    ) -> "ExternalReservation":
        """Map a reservation webhook payload onto the local model.

        Raises:
            ValidationError: If the id or dates are missing or malformed.
        """
        upstream_id = _require_id(payload, entity_id)
        guest = _object(payload, "guest")
        listing = _object(payload, "listing")
        money = _object(payload, "money")
        guests = _object(payload, "guests")

        check_in = parse_timestamp(payload.get("checkIn"), "checkIn")
        check_out = parse_timestamp(payload.get("checkOut"), "checkOut")
        if check_out < check_in:
            raise ValidationError("'checkOut' precedes 'checkIn'", field="checkOut")

        return _build(
            cls,
            upstream_id=upstream_id,
            property_upstream_id=_first_text(
                listing.get("_id"), listing.get("id"), payload.get("listingId")
            ),
            guest_id=_first_text(guest.get("_id"), guest.get("id"), payload.get("guestId")),
            guest_name=_first_text(guest.get("fullName"), default=DEFAULT_GUEST_NAME),
            guest_email=_text(guest.get("email")),
            guest_phone=_text(guest.get("phone")),
            check_in=check_in,
            check_out=check_out,
            status=_text(payload.get("status"), "unknown").lower(),
            channel=_text(payload.get("source"), DEFAULT_CHANNEL),
            confirmation_code=_text(payload.get("confirmationCode")),
            total_price=_number(money.get("total"), "money.total"),
            currency=_text(money.get("currency"), DEFAULT_CURRENCY).upper(),
            guest_count=_integer(guests.get("total"), "guests.total"),
            adults=_integer(guests.get("adults"), "guests.adults"),
            children=_integer(guests.get("children"), "guests.children"),
            infants=_integer(guests.get("infants"), "guests.infants"),
            pets=_integer(guests.get("pets"), "guests.pets"),
            reservation_data=payload,
        )

    def mirrored_fields(self) -> dict[str, Any]:
        return {
            "property_upstream_id": self.property_upstream_id,
            "guest_id": self.guest_id,
            "guest_name": self.guest_name,
            "guest_email": self.guest_email,
            "guest_phone": self.guest_phone,
            "check_in": self.check_in.isoformat(),
            "check_out": self.check_out.isoformat(),
            "status": self.status,
            "channel": self.channel,
            "confirmation_code": self.confirmation_code,
            "total_price": self.total_price,
            "currency": self.currency,
            "guest_count": self.guest_count,
            "adults": self.adults,
            "children": self.children,
            "infants": self.infants,
            "pets": self.pets,
            "reservation_data": raw_json(self.reservation_data),
        }

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "ExternalReservation":
        return cls(
            upstream_id=item["upstream_id"],
            property_upstream_id=item.get("property_upstream_id", ""),
            guest_id=item.get("guest_id", ""),
            guest_name=item.get("guest_name", DEFAULT_GUEST_NAME),
            guest_email=item.get("guest_email", ""),
            guest_phone=item.get("guest_phone", ""),
            check_in=datetime.fromisoformat(item["check_in"]),
            check_out=datetime.fromisoformat(item["check_out"]),
            status=item.get("status", "unknown"),
            channel=item.get("channel", DEFAULT_CHANNEL),
            confirmation_code=item.get("confirmation_code", ""),
            total_price=Decimal(str(item.get("total_price", 0))),
            currency=item.get("currency", DEFAULT_CURRENCY),
            guest_count=int(item.get("guest_count", 0)),
            adults=int(item.get("adults", 0)),
            children=int(item.get("children", 0)),
            infants=int(item.get("infants", 0)),
            pets=int(item.get("pets", 0)),
            reservation_data=_raw_payload(item.get("reservation_data")),
            created_at=_optional_datetime(item.get("created_at")),
            updated_at=_optional_datetime(item.get("updated_at")),
        )


def _optional_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(str(value))


def _optional_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))
