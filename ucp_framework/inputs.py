"""
Input parsing for checkout requests.

Callers hand the engine loosely-typed JSON (dicts straight off the wire).
Each parser returns the typed model plus diagnostics whose `path` points
into the request, so nothing a caller sends is dropped silently.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, NamedTuple, Optional

from pydantic import BaseModel, ValidationError

from ucp_framework.models import (
    Buyer,
    ItemReference,
    LineItemInput,
    Message,
    MessageType,
    Payment,
)

BUYER_FIELDS = tuple(Buyer.model_fields)
LINE_ITEM_FIELDS = tuple(LineItemInput.model_fields)
ITEM_REFERENCE_FIELDS = tuple(ItemReference.model_fields)


class ParsedBuyer(NamedTuple):
    buyer: Optional[Buyer]
    messages: list[Message]


class ParsedPayment(NamedTuple):
    payment: Optional[Payment]
    messages: list[Message]


class ParsedLineItem(NamedTuple):
    ref: Optional[LineItemInput]
    messages: list[Message]


def _json_path(root: str, loc: tuple) -> str:
    path = root
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}"
    return path


def unrecognized_field_messages(names: Iterable[str], root: str, label: str = "Field") -> list[Message]:
    return [
        Message(
            type=MessageType.WARNING,
            code="unrecognized_field",
            content=f"{label} '{name}' is not recognized and was ignored.",
            path=f"{root}.{name}",
        )
        for name in names
    ]


def parse_buyer(raw: Any) -> ParsedBuyer:
    """
    Accept a partial buyer object.  Unknown keys produce an
    `unrecognized_field` warning, badly typed values an `invalid_field` error;
    the remaining fields are kept.
    """
    if raw is None:
        return ParsedBuyer(None, [])
    if isinstance(raw, Buyer):
        return ParsedBuyer(raw, [])
    if not isinstance(raw, Mapping):
        return ParsedBuyer(
            None,
            [Message.error("invalid_field", "Buyer must be an object.", path="$.buyer")],
        )

    messages: list[Message] = []
    accepted: dict[str, Optional[str]] = {}
    for name, value in raw.items():
        if name not in BUYER_FIELDS:
            messages.extend(unrecognized_field_messages([name], "$.buyer", "Buyer field"))
            continue
        if value is not None and not isinstance(value, str):
            messages.append(
                Message.error(
                    "invalid_field",
                    f"Buyer field '{name}' must be a string.",
                    path=f"$.buyer.{name}",
                )
            )
            continue
        accepted[name] = value.strip() if isinstance(value, str) else None
    return ParsedBuyer(Buyer(**accepted), messages)


def parse_payment(raw: Any) -> ParsedPayment:
    if raw is None:
        return ParsedPayment(None, [])
    if isinstance(raw, Payment):
        return ParsedPayment(raw, [])
    try:
        return ParsedPayment(Payment.model_validate(raw), [])
    except ValidationError as exc:
        return ParsedPayment(None, validation_messages(exc, "$.payment", "invalid_payment"))


def validation_messages(exc: ValidationError, root: str, code: str) -> list[Message]:
    return [
        Message.error(code, error["msg"], path=_json_path(root, error["loc"]))
        for error in exc.errors()
    ]


def is_line_item_sequence(raw: Any) -> bool:
    """True for a non-empty list of references (strings and mappings are not)."""
    if isinstance(raw, (str, bytes, Mapping)) or not isinstance(raw, Sequence):
        return False
    return len(raw) > 0


def _extra_keys(raw: Any, known: Sequence[str]) -> list[str]:
    if not isinstance(raw, Mapping):
        return []
    return [str(name) for name in raw if name not in known]


def parse_line_item(raw: Any, index: int) -> ParsedLineItem:
    """
    Validate one line-item reference.  A missing quantity defaults to 1;
    a non-positive one is an error rather than a silent default.

    A rejected reference yields exactly one error.  An accepted one yields
    an `unrecognized_field` warning per extra key on the reference or on
    its `item`.
    """
    root = f"$.line_items[{index}]"
    if isinstance(raw, BaseModel) and not isinstance(raw, LineItemInput):
        raw = raw.model_dump()
    try:
        ref = raw if isinstance(raw, LineItemInput) else LineItemInput.model_validate(raw)
    except ValidationError as exc:
        errors = exc.errors()
        if errors and errors[0]["loc"][:1] == ("quantity",):
            return ParsedLineItem(None, [
                Message.error(
                    "invalid_quantity",
                    f"Line item {index} has an invalid quantity.",
                    path=f"{root}.quantity",
                )
            ])
        detail = errors[0]["msg"] if errors else "invalid line item"
        return ParsedLineItem(None, [
            Message.error(
                "invalid_line_item",
                f"Line item {index} is malformed: {detail}.",
                path=root,
            )
        ])

    if ref.quantity is None:
        ref = ref.model_copy(update={"quantity": 1})
    elif ref.quantity < 1:
        return ParsedLineItem(None, [
            Message.error(
                "invalid_quantity",
                f"Quantity for item \"{ref.item.id}\" must be a positive integer.",
                path=f"{root}.quantity",
            )
        ])

    warnings = unrecognized_field_messages(_extra_keys(raw, LINE_ITEM_FIELDS), root, "Line item field")
    if isinstance(raw, Mapping):
        warnings.extend(
            unrecognized_field_messages(
                _extra_keys(raw.get("item"), ITEM_REFERENCE_FIELDS), f"{root}.item", "Item field"
            )
        )
    return ParsedLineItem(ref, warnings)
