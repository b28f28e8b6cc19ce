"""
Input schemas for the /api/v1 endpoints.

Every model lists, per field, the message a client gets when that field is
rejected. parse_payload() turns pydantic's errors into that flat list.
"""
from typing import Annotated, Any, ClassVar, Dict, List, Mapping, Optional, Type, TypeVar

import nh3
from pydantic import BaseModel, BeforeValidator, Field, ValidationError

from backend.app.exceptions import InputValidationError
from backend.perception.credentials import COOKIE_HASH_LENGTH
from backend.perception.identity import IntakeFields

MAX_TEXT_LENGTH = 255
# largest value a sqlite INTEGER column can hold
MAX_ID = 2**63 - 1


def sanitize(value: str) -> str:
    """Strip every HTML tag, keep the text."""
    return nh3.clean(value, tags=set(), attributes={}, link_rel=None)


def _is_falsy(v: Any) -> bool:
    return v is None or v is False or v == "" or v == 0


def _integer(v: Any) -> int:
    # ints and digit strings only: no bools, no floats like 4.0
    if isinstance(v, bool):
        raise ValueError("not an integer")
    if isinstance(v, int):
        return v
    if isinstance(v, str):
        s = v.strip()
        if s[:1] in ("+", "-"):
            sign, s = s[0], s[1:]
        else:
            sign = ""
        if s.isascii() and s.isdigit():
            return int(sign + s)
    raise ValueError("not an integer")


def _digits(v: Any) -> int:
    if isinstance(v, str) and v.strip()[:1] in ("+", "-"):
        raise ValueError("not a number")
    n = _integer(v)
    if n < 0 or n > MAX_ID:
        raise ValueError("not a number in range")
    return n


def _optional_digits(v: Any) -> Optional[int]:
    if _is_falsy(v):
        return None
    return _digits(v)


def _cookie_hash(v: Any) -> str:
    if not isinstance(v, str) or len(v) != COOKIE_HASH_LENGTH:
        raise ValueError("invalid length")
    return sanitize(v)


def _optional_cookie_hash(v: Any) -> Optional[str]:
    if _is_falsy(v):
        return None
    return _cookie_hash(v)


def _optional_text(v: Any) -> Optional[str]:
    if v is None:
        return None
    cleaned = sanitize(str(v)).strip()
    if len(cleaned) > MAX_TEXT_LENGTH:
        raise ValueError("too long")
    return cleaned or None


def _optional_language(v: Any) -> Optional[str]:
    if _is_falsy(v):
        return None
    if not isinstance(v, str) or len(v) != 2 or not v.isalpha():
        raise ValueError("not a language abbreviation")
    return v.lower()


Digits = Annotated[int, BeforeValidator(_digits)]
OptionalDigits = Annotated[Optional[int], BeforeValidator(_optional_digits)]
CookieHash = Annotated[str, BeforeValidator(_cookie_hash)]
OptionalCookieHash = Annotated[Optional[str], BeforeValidator(_optional_cookie_hash)]
OptionalText = Annotated[Optional[str], BeforeValidator(_optional_text)]


class RequestSchema(BaseModel):
    messages: ClassVar[Dict[str, str]] = {}


class SessionIn(RequestSchema):
    messages: ClassVar[Dict[str, str]] = {
        "session_id": "Session ID must be a number",
    }

    session_id: Digits


class NewRatingIn(RequestSchema):
    messages: ClassVar[Dict[str, str]] = {
        "session_id": "Session ID must be a number",
        "image_id": "Image ID must be a number",
        "category_id": "Category ID must be a number",
        "rating": "Rating must be a number from 1 to 5",
        "cookie_hash": "invalid length for cookie_hash",
    }

    session_id: Digits
    image_id: Digits
    category_id: Digits
    rating: Annotated[int, BeforeValidator(_integer), Field(ge=1, le=5)]
    cookie_hash: CookieHash


class UndoIn(RequestSchema):
    messages: ClassVar[Dict[str, str]] = {
        "session_id": "Session ID must be a number",
        "cookie_hash": "invalid length for cookie_hash",
    }

    session_id: Digits
    cookie_hash: CookieHash


class CategoriesIn(RequestSchema):
    messages: ClassVar[Dict[str, str]] = {
        "langabbr": "langabbr must be a 2-letter language abbreviation",
    }

    langabbr: Annotated[Optional[str], BeforeValidator(_optional_language)] = None


class NewPersonIn(RequestSchema):
    messages: ClassVar[Dict[str, str]] = {
        "age": "Age must be a number",
        "monthly_gross_income": "Monthly gross income must be a number",
        "education": "Education must be at most 255 characters",
        "gender": "Gender must be at most 255 characters",
        "country": "Country must be at most 255 characters",
        "postcode": "Postcode must be at most 255 characters",
        "consent": "Consent must be a boolean",
    }

    age: Digits
    monthly_gross_income: OptionalDigits = None
    education: OptionalText = None
    gender: OptionalText = None
    country: OptionalText = None
    postcode: OptionalText = None
    consent: bool

    def to_intake(self) -> IntakeFields:
        return IntakeFields(
            age=self.age,
            consent=self.consent,
            monthly_gross_income=self.monthly_gross_income,
            education=self.education,
            gender=self.gender,
            country=self.country,
            postcode=self.postcode,
        )


class GetSessionIn(RequestSchema):
    messages: ClassVar[Dict[str, str]] = {
        "session_id": "session_id must be a number",
        "cookie_hash": "invalid length for cookie_hash",
    }

    session_id: OptionalDigits = None
    cookie_hash: OptionalCookieHash = None


SchemaT = TypeVar("SchemaT", bound=RequestSchema)


def error_messages(schema: Type[RequestSchema], exc: ValidationError) -> List[str]:
    out: List[str] = []
    for err in exc.errors():
        loc = err.get("loc") or ()
        field = str(loc[0]) if loc else ""
        msg = schema.messages.get(field) or f"{field or 'body'}: {err.get('msg', 'invalid value')}"
        if msg not in out:
            out.append(msg)
    return out


def parse_payload(schema: Type[SchemaT], payload: Optional[Mapping[str, Any]]) -> SchemaT:
    """Validate a request payload, raising InputValidationError with readable messages."""
    try:
        return schema.model_validate(dict(payload or {}))
    except ValidationError as e:
        raise InputValidationError(error_messages(schema, e)) from e
