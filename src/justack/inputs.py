"""Input descriptors and the response contract derived from them.

An ask carries an ordered list of input descriptors. Each descriptor names one
field of the answer and fixes its type:

    confirm                 -> bool
    select (multiple=True)  -> list[str]
    select                  -> str
    text                    -> str

The answer shape is built at runtime as a pydantic model (one per ask), and the
human's reply is validated against it when it arrives. A reply that is not a
JSON object of that shape is handed back as raw text instead of failing the
ask, because the answering client may send free text.

Example:
    inputs = parse_inputs([
        {"type": "confirm", "name": "approved"},
        {"type": "text", "name": "notes"},
    ])
    response_shape(inputs)  # {"approved": bool, "notes": str}

    Answer = response_model(inputs)
    decode_response('{"approved": true, "notes": "ok"}', Answer)  # Answer(approved=True, notes="ok")
    decode_response("yes", Answer)  # "yes"
"""

from __future__ import annotations

import json
import keyword
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Annotated, Any, Literal, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, TypeAdapter

from .errors import ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class _Descriptor(BaseModel):
    """Common base: immutable, wire names in camelCase."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = Field(min_length=1)
    label: str | None = None


class TextInput(_Descriptor):
    """Free-form text answer."""

    type: Literal["text"] = "text"
    placeholder: str | None = None
    required: bool | None = None
    multiline: bool | None = None
    max_length: int | None = Field(default=None, alias="maxLength", ge=1)


class ConfirmInput(_Descriptor):
    """Yes/no answer."""

    type: Literal["confirm"] = "confirm"
    default_value: bool | None = Field(default=None, alias="defaultValue")


class SelectOption(BaseModel):
    """A labelled choice for a select input."""

    model_config = ConfigDict(frozen=True)

    value: str
    label: str
    description: str | None = None


class SelectInput(_Descriptor):
    """Choice from predefined options, single or multiple."""

    type: Literal["select"] = "select"
    options: tuple[str | SelectOption, ...] = Field(min_length=1)
    required: bool | None = None
    multiple: bool | None = None

    @property
    def is_multiple(self) -> bool:
        return bool(self.multiple)

    @property
    def values(self) -> list[str]:
        """Option values in declaration order."""
        return [o if isinstance(o, str) else o.value for o in self.options]


InputDescriptor = Annotated[
    TextInput | ConfirmInput | SelectInput,
    Field(discriminator="type"),
]

_DESCRIPTOR_TYPES = (TextInput, ConfirmInput, SelectInput)
_DESCRIPTOR = TypeAdapter(InputDescriptor)
_DESCRIPTOR_LIST = TypeAdapter(list[InputDescriptor])

# Names that cannot be used verbatim as pydantic field names
_RESERVED_NAMES = set(dir(BaseModel))


def parse_inputs(
    raw: Iterable[TextInput | ConfirmInput | SelectInput | Mapping[str, Any]],
) -> tuple[TextInput | ConfirmInput | SelectInput, ...]:
    """Validate a descriptor list.

    Accepts descriptor models or plain mappings (wire or Python field names).

    Raises:
        ValidationError: Unknown kind, missing name, empty options, or a
            field name used twice.
    """
    if isinstance(raw, (str, bytes, Mapping)):
        raise ValidationError("inputs must be a list of input descriptors")

    descriptors: list[TextInput | ConfirmInput | SelectInput] = []
    for position, item in enumerate(raw):
        if isinstance(item, _DESCRIPTOR_TYPES):
            descriptors.append(item)
            continue
        try:
            descriptors.append(_DESCRIPTOR.validate_python(item))
        except pydantic.ValidationError as e:
            first = e.errors()[0]
            where = ".".join(str(p) for p in first["loc"])
            raise ValidationError(
                f"Invalid input descriptor at position {position} ({where}): {first['msg']}"
            ) from e

    seen: set[str] = set()
    for descriptor in descriptors:
        if descriptor.name in seen:
            raise ValidationError(f"Duplicate input name: {descriptor.name!r}")
        seen.add(descriptor.name)

    return tuple(descriptors)


def response_type(descriptor: TextInput | ConfirmInput | SelectInput) -> Any:
    """Python type of the answer to one descriptor."""
    if isinstance(descriptor, ConfirmInput):
        return bool
    if isinstance(descriptor, SelectInput) and descriptor.is_multiple:
        return list[str]
    return str


def response_shape(
    inputs: Sequence[TextInput | ConfirmInput | SelectInput],
) -> dict[str, Any]:
    """Map each field name to its answer type."""
    return {d.name: response_type(d) for d in inputs}


def _strict_type(descriptor: TextInput | ConfirmInput | SelectInput) -> Any:
    if isinstance(descriptor, ConfirmInput):
        return StrictBool
    if isinstance(descriptor, SelectInput) and descriptor.is_multiple:
        return list[StrictStr]
    return StrictStr


def _usable_field_name(name: str) -> bool:
    return (
        name.isidentifier()
        and not keyword.iskeyword(name)
        and not name.startswith(("_", "model_"))
        and name not in _RESERVED_NAMES
    )


def response_model(
    inputs: Sequence[TextInput | ConfirmInput | SelectInput],
    model_name: str = "AskResponse",
) -> type[BaseModel]:
    """Build the answer model for a descriptor list.

    Every declared name becomes a required, strictly typed field. Names that
    are not valid attribute names are stored under `field_<n>` (suffixed with
    "_" until unique) with the declared name as alias, so
    `model_dump(by_alias=True)` always yields the declared names. Keys the
    human sends beyond the declared ones are dropped.
    """
    declared = {d.name for d in inputs}
    fields: dict[str, Any] = {}
    for index, descriptor in enumerate(inputs):
        field_type = _strict_type(descriptor)
        if _usable_field_name(descriptor.name):
            fields[descriptor.name] = (field_type, ...)
            continue

        # Must not shadow a declared name or an earlier substitute
        attr = f"field_{index}"
        while attr in declared or attr in fields:
            attr += "_"
        fields[attr] = (field_type, Field(..., alias=descriptor.name))

    return pydantic.create_model(
        model_name,
        __config__=ConfigDict(frozen=True, extra="ignore", populate_by_name=True),
        **fields,
    )


def decode_response(content: str, model: type[T]) -> T | str:
    """Decode a human's reply against an answer model.

    Returns the model instance when `content` is a JSON object matching the
    model, otherwise the raw `content` string.
    """
    try:
        data = json.loads(content)
    except (json.JSONDecodeError, TypeError):
        return content

    if not isinstance(data, dict):
        return content

    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        logger.debug(f"Response does not match {model.__name__}, returning raw text: {e}")
        return content


def encode_inputs(inputs: Sequence[TextInput | ConfirmInput | SelectInput]) -> str:
    """Serialize descriptors for the outbound frame's `inputs` field."""
    return _DESCRIPTOR_LIST.dump_json(list(inputs), by_alias=True, exclude_none=True).decode()


def decode_inputs(text: str) -> tuple[TextInput | ConfirmInput | SelectInput, ...]:
    """Parse an encoded descriptor list (as found on a message record)."""
    return tuple(_DESCRIPTOR_LIST.validate_json(text))
