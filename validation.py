from __future__ import annotations

from typing import Optional, Type, TypeVar

from flask import request
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError
from werkzeug.exceptions import BadRequest

P = TypeVar("P", bound=BaseModel)

# largest id an INTEGER primary key can hold
MAX_ID = 2**63 - 1


class ValidationFailed(Exception):
    """
    Raised when a payload breaks one or more constraints.
    `violations` is a list of {"propertyPath": ..., "title": ...} dicts.
    """

    def __init__(self, violations: list[dict]):
        super().__init__("Validation Failed")
        self.violations = violations

    def to_dict(self) -> dict:
        return {
            "title": "Validation Failed",
            "detail": "\n".join(f"{v['propertyPath']}: {v['title']}" for v in self.violations),
            "violations": self.violations,
        }


def _strip(value):
    if isinstance(value, str):
        return value.strip()
    return value


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AuthorPayload(_Payload):
    lastname: Optional[str] = Field(default=None, validate_default=True)
    first_name: Optional[str] = Field(default=None, alias="firstName")

    @field_validator("lastname", mode="before")
    @classmethod
    def validate_lastname(cls, v):
        v = _strip(v)
        if v is None or v == "":
            raise PydanticCustomError("not_blank", "Le nom de l'auteur est obligatoire")
        if not isinstance(v, str):
            raise PydanticCustomError("type", "Le nom de l'auteur doit être une chaîne de caractères")
        if len(v) > 255:
            raise PydanticCustomError(
                "too_long", "Le nom de l'auteur ne peut pas faire plus de 255 caractères"
            )
        return v

    @field_validator("first_name", mode="before")
    @classmethod
    def validate_first_name(cls, v):
        v = _strip(v)
        if v is None or v == "":
            return None
        if not isinstance(v, str):
            raise PydanticCustomError("type", "Le prénom doit être une chaîne de caractères")
        if len(v) > 255:
            raise PydanticCustomError("too_long", "Le prénom ne peut pas faire plus de 255 caractères")
        return v


class BookPayload(_Payload):
    title: Optional[str] = Field(default=None, validate_default=True)
    cover_text: Optional[str] = Field(default=None, alias="coverText")
    comment: Optional[str] = None
    # -1 never matches an author, so a missing idAuthor means "no author"
    id_author: int = Field(default=-1, alias="idAuthor")

    @field_validator("title", mode="before")
    @classmethod
    def validate_title(cls, v):
        v = _strip(v)
        if v is None or v == "":
            raise PydanticCustomError("not_blank", "Le titre du livre est obligatoire")
        if not isinstance(v, str):
            raise PydanticCustomError("type", "Le titre du livre doit être une chaîne de caractères")
        if len(v) > 255:
            raise PydanticCustomError(
                "too_long", "Le titre ne peut pas faire plus de 255 caractères"
            )
        return v

    @field_validator("id_author", mode="before")
    @classmethod
    def validate_id_author(cls, v):
        if v is None or v == "":
            return -1
        if isinstance(v, bool) or (isinstance(v, float) and not v.is_integer()):
            raise PydanticCustomError("type", "idAuthor doit être un entier")
        try:
            v = int(v)
        except (TypeError, ValueError):
            raise PydanticCustomError("type", "idAuthor doit être un entier")
        if not -MAX_ID <= v <= MAX_ID:
            raise PydanticCustomError("range", "idAuthor est hors limites")
        return v


class LoginPayload(_Payload):
    username: str = ""
    password: str = ""


def _violations(exc: ValidationError, model: Type[BaseModel]) -> list[dict]:
    aliases = {name: (field.alias or name) for name, field in model.model_fields.items()}
    violations = []
    for err in exc.errors():
        loc = err.get("loc") or ()
        field = str(loc[0]) if loc else ""
        violations.append({
            "propertyPath": aliases.get(field, field),
            "title": err["msg"],
        })
    return violations


def parse_payload(model: Type[P]) -> P:
    """
    Read the JSON body of the current request into `model`.
    Raises BadRequest when the body is not a JSON object and
    ValidationFailed when the constraints are not met.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object.")
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ValidationFailed(_violations(exc, model)) from exc


def parse_pagination(default_page: int, default_limit: int, max_limit: int) -> tuple[int, int]:
    """
    Read `page` and `limit` from the query string.
    Non-integer values fall back to the defaults; values are clamped to sane bounds.
    """
    page = request.args.get("page", default_page, type=int)
    limit = request.args.get("limit", default_limit, type=int)
    limit = min(max(limit, 1), max_limit)
    # keep the OFFSET within a 64-bit integer
    page = min(max(page, 1), MAX_ID // limit)
    return page, limit
