"""Structured-output schemas derived from the pydantic document models.

Both services accept only a subset of JSON schema: no `$ref`, no defaults,
and (for OpenAI strict mode) closed objects with every property required.
"""
from __future__ import annotations

import copy
from functools import lru_cache
from typing import Any

from pydantic import BaseModel

_DROPPED_KEYS = ("title", "default")

_GEMINI_TYPES = {
    "object": "OBJECT",
    "array": "ARRAY",
    "string": "STRING",
    "number": "NUMBER",
    "integer": "INTEGER",
    "boolean": "BOOLEAN",
}


def _inline(node: Any, defs: dict[str, Any]) -> Any:
    """Replace every `$ref` with a copy of its definition."""
    if isinstance(node, list):
        return [_inline(item, defs) for item in node]
    if not isinstance(node, dict):
        return node

    # older pydantic releases wrap a described $ref as allOf: [{$ref}]
    if "allOf" in node and len(node["allOf"]) == 1:
        merged = dict(node["allOf"][0])
        merged.update({k: v for k, v in node.items() if k != "allOf"})
        node = merged

    if "$ref" in node:
        name = node["$ref"].rsplit("/", 1)[-1]
        resolved = copy.deepcopy(defs[name])
        siblings = {k: v for k, v in node.items() if k != "$ref"}
        resolved.update(siblings)
        return _inline(resolved, defs)

    return {key: _inline(value, defs) for key, value in node.items()}


def _flat_schema(model: type[BaseModel]) -> dict[str, Any]:
    raw = model.model_json_schema()
    defs = raw.pop("$defs", {})
    return _inline(raw, defs)


def _strictify(node: Any) -> Any:
    if isinstance(node, list):
        return [_strictify(item) for item in node]
    if not isinstance(node, dict):
        return node

    out = {}
    for key, value in node.items():
        if key in _DROPPED_KEYS:
            continue
        if key == "properties":
            out[key] = {name: _strictify(sub) for name, sub in value.items()}
        else:
            out[key] = _strictify(value)
    if out.get("type") == "object" and "properties" in out:
        out["additionalProperties"] = False
        out["required"] = list(out["properties"])
    return out


def _geminify(node: Any) -> Any:
    if isinstance(node, list):
        return [_geminify(item) for item in node]
    if not isinstance(node, dict):
        return node

    node = {k: v for k, v in node.items() if k not in _DROPPED_KEYS and k != "additionalProperties"}

    # Optional[X] arrives as anyOf [X, null]
    variants = node.pop("anyOf", None)
    if variants is not None:
        concrete = [v for v in variants if v.get("type") != "null"]
        if len(concrete) != 1:
            raise ValueError(f"unsupported union in response schema: {variants}")
        merged = dict(concrete[0])
        merged.update(node)
        if len(concrete) != len(variants):
            merged["nullable"] = True
        node = merged

    out = {}
    for key, value in node.items():
        if key == "properties":
            out[key] = {name: _geminify(sub) for name, sub in value.items()}
        else:
            out[key] = _geminify(value)
    if "type" in out:
        out["type"] = _GEMINI_TYPES[out["type"]]
    if out.get("type") == "OBJECT" and "properties" in out:
        out["required"] = list(out["properties"])
    return out


@lru_cache(maxsize=None)
def _openai_schema(model: type[BaseModel]) -> dict[str, Any]:
    return _strictify(_flat_schema(model))


@lru_cache(maxsize=None)
def _gemini_schema(model: type[BaseModel]) -> dict[str, Any]:
    return _geminify(_flat_schema(model))


def openai_strict_schema(model: type[BaseModel]) -> dict[str, Any]:
    """JSON schema accepted by OpenAI structured outputs with strict=True."""
    return copy.deepcopy(_openai_schema(model))


def gemini_response_schema(model: type[BaseModel]) -> dict[str, Any]:
    """OpenAPI-subset schema accepted by Gemini's response_schema."""
    return copy.deepcopy(_gemini_schema(model))
