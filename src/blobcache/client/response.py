"""Helpers for structured (JSON) payloads.

* :func:`extract_response_data` -- body of an :class:`httpx.Response` as
  JSON, text, or ``None``.
* :func:`decode_model` -- JSON text into a Pydantic model, matching
  property names case-insensitively.  Failures are reported as warnings and
  yield ``None`` instead of raising.
* :func:`encode_payload` -- compact JSON with ``None`` fields dropped.
"""

from __future__ import annotations

import json
from typing import Any, Optional, TypeVar, get_args

import httpx
from pydantic import BaseModel, ValidationError

from blobcache.exceptions import DeserializationError
from blobcache.output import warning

ModelT = TypeVar("ModelT", bound=BaseModel)


def extract_response_data(response: httpx.Response) -> Any:
    """Extract the body from an HTTP response.

    Attempts to parse the body as JSON first.  If that fails, returns the
    raw text.  Returns ``None`` for responses with no content.
    """
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _field_lookup(model: type[BaseModel]) -> dict[str, tuple[str, Any]]:
    """Map lower-cased field names and aliases to (pydantic key, annotation)."""
    lookup: dict[str, tuple[str, Any]] = {}
    for name, info in model.model_fields.items():
        target = info.alias or name
        lookup[name.lower()] = (target, info.annotation)
        if info.alias:
            lookup[info.alias.lower()] = (target, info.annotation)
    return lookup


def _nested_model(annotation: Any) -> Optional[type[BaseModel]]:
    """Return the model inside ``Model``, ``Optional[Model]`` or ``list[Model]``."""
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    for arg in get_args(annotation):
        nested = _nested_model(arg)
        if nested is not None:
            return nested
    return None


def _normalise_keys(data: Any, model: type[BaseModel]) -> Any:
    """Rename keys of *data* to the model's spelling, recursing into sub-models."""
    if isinstance(data, list):
        return [_normalise_keys(item, model) for item in data]
    if not isinstance(data, dict):
        return data
    lookup = _field_lookup(model)
    normalised: dict[str, Any] = {}
    for key, value in data.items():
        match = lookup.get(str(key).lower())
        if match is None:
            normalised[key] = value
            continue
        target, annotation = match
        nested = _nested_model(annotation)
        if nested is not None:
            value = _normalise_keys(value, nested)
        normalised[target] = value
    return normalised


def decode_model(text: Optional[str], model: type[ModelT]) -> Optional[ModelT]:
    """Decode JSON *text* into *model*, ignoring property-name case.

    Returns ``None`` for empty input.  Invalid JSON or data that fails
    validation is reported as a :class:`~blobcache.exceptions.DeserializationError`
    warning and also yields ``None``.

    Example::

        >>> class User(BaseModel):
        ...     user_name: str
        >>> decode_model('{"USER_NAME": "ada"}', User).user_name
        'ada'
    """
    if text is None or not text.strip():
        return None
    try:
        data = json.loads(text)
        return model.model_validate(_normalise_keys(data, model))
    except (json.JSONDecodeError, ValidationError) as exc:
        err = DeserializationError(f"Cannot decode {model.__name__}: {exc}")
        warning(str(err))
        return None


def encode_payload(value: Any) -> str:
    """Serialise *value* as compact JSON, dropping ``None`` fields.

    Pydantic models are dumped by field name.  ``None`` encodes to ``""``.
    """
    if value is None:
        return ""
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json", exclude_none=True)
    elif isinstance(value, dict):
        value = {k: v for k, v in value.items() if v is not None}
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
