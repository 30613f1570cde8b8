"""
Argument schemas for tools.

A ``SchemaNode`` is the engine's own recursive description of an argument
shape. Remote tools and pydantic-described functions arrive as JSON Schema
and are translated into nodes; nodes are translated back to JSON Schema
when tools are advertised to the model. Validation and coercion of
model-provided arguments go through a pydantic model generated from the
node.
"""

import json
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Literal, Optional

from pydantic import ConfigDict, Field, TypeAdapter, create_model

logger = logging.getLogger(__name__)

KINDS = ("string", "integer", "number", "boolean", "object", "array", "any")

_PRIMITIVES: dict[str, type] = {
    "string": str,
    "integer": int,
    "number": float,
    "boolean": bool,
}


@dataclass(frozen=True, eq=True)
class SchemaNode:
    """Recursive description of an expected argument shape."""

    kind: str = "any"
    description: Optional[str] = None
    properties: dict[str, "SchemaNode"] = field(default_factory=dict)
    required: tuple[str, ...] = ()
    items: Optional["SchemaNode"] = None
    enum: Optional[tuple] = None
    default: Any = None
    nullable: bool = False

    def __post_init__(self):
        if self.kind not in KINDS:
            raise ValueError(f"Unknown schema kind: {self.kind}")

    def __hash__(self):
        # equal nodes render the same JSON Schema
        return hash(json.dumps(self.to_json_schema(), sort_keys=True, default=repr))

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def object_of(
        cls,
        properties: dict[str, "SchemaNode"],
        required: Optional[list[str]] = None,
        description: Optional[str] = None,
    ) -> "SchemaNode":
        """Object node; every property is required unless ``required`` says otherwise."""
        if required is None:
            required = list(properties)
        return cls(
            kind="object",
            description=description,
            properties=dict(properties),
            required=tuple(required),
        )

    @classmethod
    def array_of(cls, items: "SchemaNode", description: Optional[str] = None) -> "SchemaNode":
        return cls(kind="array", items=items, description=description)

    @classmethod
    def primitive(cls, kind: str, description: Optional[str] = None) -> "SchemaNode":
        if kind not in _PRIMITIVES:
            raise ValueError(f"Not a primitive kind: {kind}")
        return cls(kind=kind, description=description)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def single_field(self) -> Optional[str]:
        """Name of the only field of an object schema, or None."""
        if self.kind == "object" and len(self.properties) == 1:
            return next(iter(self.properties))
        return None

    # ------------------------------------------------------------------
    # JSON Schema conversion
    # ------------------------------------------------------------------

    @classmethod
    def from_json_schema(cls, schema: Any, _defs: Optional[dict] = None) -> "SchemaNode":
        """
        Translate a JSON Schema document into a SchemaNode.

        Handles local ``$ref`` into ``$defs``/``definitions``, ``anyOf``/``oneOf``
        unions with ``null`` (marked nullable), type lists, enums and consts.
        Unions of several non-null types degrade to ``any``.
        """
        if not isinstance(schema, dict):
            return cls()

        defs = _defs
        if defs is None:
            defs = {**schema.get("definitions", {}), **schema.get("$defs", {})}

        ref = schema.get("$ref")
        if isinstance(ref, str):
            target = defs.get(ref.rsplit("/", 1)[-1])
            if target is None:
                logger.warning("Unresolvable schema reference: %s", ref)
                return cls(description=schema.get("description"))
            merged = {**target, **{k: v for k, v in schema.items() if k != "$ref"}}
            return cls.from_json_schema(merged, defs)

        description = schema.get("description")
        default = schema.get("default")

        for union_key in ("anyOf", "oneOf"):
            if union_key in schema:
                variants = [v for v in schema[union_key] if isinstance(v, dict)]
                non_null = [v for v in variants if v.get("type") != "null"]
                nullable = len(non_null) < len(variants)
                if len(non_null) == 1:
                    inner = {**non_null[0]}
                    if description and "description" not in inner:
                        inner["description"] = description
                    if default is not None and "default" not in inner:
                        inner["default"] = default
                    node = cls.from_json_schema(inner, defs)
                    return replace(node, nullable=nullable or node.nullable)
                return cls(description=description, default=default, nullable=nullable)

        if "allOf" in schema and len(schema["allOf"]) == 1:
            inner = {**schema["allOf"][0], **{k: v for k, v in schema.items() if k != "allOf"}}
            return cls.from_json_schema(inner, defs)

        nullable = False
        json_type = schema.get("type")
        if isinstance(json_type, list):
            types = [t for t in json_type if t != "null"]
            nullable = len(types) < len(json_type)
            json_type = types[0] if len(types) == 1 else None

        enum = schema.get("enum")
        if enum is None and "const" in schema:
            enum = [schema["const"]]
        if enum is not None:
            enum = tuple(v for v in enum if v is not None)
            if json_type is None and enum and all(isinstance(v, str) for v in enum):
                json_type = "string"

        if json_type is None and "properties" in schema:
            json_type = "object"

        if json_type == "object":
            properties = {
                name: cls.from_json_schema(prop, defs)
                for name, prop in (schema.get("properties") or {}).items()
            }
            required = tuple(r for r in schema.get("required", []) if r in properties)
            return cls(
                kind="object",
                description=description,
                properties=properties,
                required=required,
                default=default,
                nullable=nullable,
            )

        if json_type == "array":
            items = schema.get("items")
            return cls(
                kind="array",
                description=description,
                items=cls.from_json_schema(items, defs) if isinstance(items, dict) else None,
                default=default,
                nullable=nullable,
            )

        if json_type in _PRIMITIVES:
            return cls(
                kind=json_type,
                description=description,
                enum=enum or None,
                default=default,
                nullable=nullable,
            )

        return cls(description=description, enum=enum or None, default=default, nullable=nullable)

    def to_json_schema(self) -> dict:
        """Render this node as a JSON Schema fragment."""
        schema: dict[str, Any] = {}
        if self.kind != "any":
            schema["type"] = [self.kind, "null"] if self.nullable else self.kind
        if self.description:
            schema["description"] = self.description
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.default is not None:
            schema["default"] = self.default
        if self.kind == "object":
            schema["properties"] = {
                name: node.to_json_schema() for name, node in self.properties.items()
            }
            schema["required"] = list(self.required)
        elif self.kind == "array" and self.items is not None:
            schema["items"] = self.items.to_json_schema()
        return schema

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def annotation(self, model_name: str = "Arguments") -> Any:
        """Python type annotation equivalent to this node (pydantic models for objects)."""
        if self.enum:
            ann: Any = Literal[self.enum]
        elif self.kind in _PRIMITIVES:
            ann = _PRIMITIVES[self.kind]
        elif self.kind == "array":
            item_ann = self.items.annotation(f"{model_name}Item") if self.items else Any
            ann = list[item_ann]
        elif self.kind == "object" and self.properties:
            ann = self._to_model(model_name)
        elif self.kind == "object":
            ann = dict[str, Any]
        else:
            ann = Any
        if self.nullable:
            ann = Optional[ann]
        return ann

    def _to_model(self, model_name: str):
        """
        Build a pydantic model for an object node.

        Fields get positional Python names and carry the original property
        name as alias, so properties like ``schema`` or ``_id`` are safe.
        """
        fields: dict[str, Any] = {}
        for index, (name, node) in enumerate(self.properties.items()):
            child_name = f"{model_name}_{_identifier(name)}"
            ann = node.annotation(child_name)
            if name in self.required:
                fields[f"field_{index}"] = (
                    ann,
                    Field(..., alias=name, description=node.description),
                )
            else:
                fields[f"field_{index}"] = (
                    Optional[ann],
                    Field(default=node.default, alias=name, description=node.description),
                )
        return create_model(
            _identifier(model_name),
            __config__=ConfigDict(extra="allow", populate_by_name=False),
            **fields,
        )

    def adapter(self, model_name: str = "Arguments") -> TypeAdapter:
        return TypeAdapter(self.annotation(model_name))

    def validate(self, payload: Any, adapter: Optional[TypeAdapter] = None) -> Any:
        """
        Validate and coerce a Python payload.

        Returns plain JSON-compatible data keyed by the original property
        names. Raises ``pydantic.ValidationError`` on mismatch.
        """
        adapter = adapter or self.adapter()
        value = adapter.validate_python(payload)
        return adapter.dump_python(value, mode="json", by_alias=True, exclude_unset=True)

    def validate_json(self, text: str, adapter: Optional[TypeAdapter] = None) -> Any:
        """Like ``validate`` but parses a JSON document first."""
        adapter = adapter or self.adapter()
        value = adapter.validate_json(text)
        return adapter.dump_python(value, mode="json", by_alias=True, exclude_unset=True)


EMPTY_OBJECT = SchemaNode(kind="object")


def _identifier(name: str) -> str:
    cleaned = re.sub(r"\W", "_", name)
    return cleaned if cleaned and not cleaned[0].isdigit() else f"_{cleaned}"
