"""Boolean condition language evaluated against a single artifact.

A condition document is an XML element with exactly one child, the root
boolean expression::

    <filter>
      <and>
        <equals><groupId/><string>org.apache</string></equals>
        <not><defined>skip.tests</defined></not>
      </and>
    </filter>

Grammar (node name -> text rule, children):

- string-valued: ``groupId``, ``artifactId``, ``extension``, ``classifier``,
  ``version`` and ``null`` (no text, no children); ``string`` and
  ``property`` (text, no children)
- boolean-valued: ``true``/``false`` (no text, no children), ``not`` (one
  child), ``and``/``or``/``xor`` (any number of children), ``equals`` (two
  string children), ``defined`` (text, no children)

Parsing is fail-fast: any violation raises :class:`MalformedExpression`.
Evaluation is a pure tree walk. The AST is a closed union of frozen
dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Union
from xml.etree.ElementTree import Element

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as ET  # type: ignore[import-untyped]

from .errors import MalformedExpression
from .models import ArtifactCoordinate


# --- string expressions ---


@dataclass(frozen=True)
class GroupId:
    pass


@dataclass(frozen=True)
class ArtifactId:
    pass


@dataclass(frozen=True)
class Extension:
    pass


@dataclass(frozen=True)
class Classifier:
    pass


@dataclass(frozen=True)
class Version:
    pass


@dataclass(frozen=True)
class StringLiteral:
    value: str


@dataclass(frozen=True)
class Property:
    name: str


@dataclass(frozen=True)
class Null:
    pass


StringExpression = Union[GroupId, ArtifactId, Extension, Classifier, Version, StringLiteral, Property, Null]


# --- boolean expressions ---


@dataclass(frozen=True)
class BooleanLiteral:
    value: bool


@dataclass(frozen=True)
class Not:
    operand: "BooleanExpression"


@dataclass(frozen=True)
class And:
    operands: tuple["BooleanExpression", ...] = ()


@dataclass(frozen=True)
class Or:
    operands: tuple["BooleanExpression", ...] = ()


@dataclass(frozen=True)
class Xor:
    operands: tuple["BooleanExpression", ...] = ()


@dataclass(frozen=True)
class Equals:
    left: StringExpression
    right: StringExpression


@dataclass(frozen=True)
class Defined:
    name: str


BooleanExpression = Union[BooleanLiteral, Not, And, Or, Xor, Equals, Defined]


@dataclass(frozen=True)
class ArtifactContext:
    """The artifact under test plus ambient properties."""

    coordinate: ArtifactCoordinate
    properties: Mapping[str, str] = field(default_factory=dict)


# --- parsing ---


def _local_name(tag: Any) -> str:
    """Return the local name of an XML tag, stripping any namespace."""
    tag = str(tag)
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _text(elem: Element) -> str:
    parts = [elem.text or ""]
    parts.extend(child.tail or "" for child in elem)
    return "".join(parts).strip()


def _require_text(elem: Element, require: bool) -> None:
    name = _local_name(elem.tag)
    if require and (len(elem) != 0 or not _text(elem)):
        raise MalformedExpression(f"XML node {name} must have text content.")
    if not require and _text(elem):
        raise MalformedExpression(f"XML node {name} doesn't allow text content.")


def _forbid_children(elem: Element) -> None:
    if len(elem) != 0:
        raise MalformedExpression(f"XML node {_local_name(elem.tag)} doesn't allow any children.")


def _require_children(elem: Element, n: int) -> None:
    if len(elem) == n:
        return
    name = _local_name(elem.tag)
    if n == 0:
        raise MalformedExpression(f"XML node {name} doesn't allow any children.")
    if n == 1:
        raise MalformedExpression(f"XML node {name} requires exactly one child node.")
    raise MalformedExpression(f"XML node {name} must have exactly {n} children.")


def _leaf(factory: Callable[[], Any]) -> Callable[[Element], Any]:
    def _build(elem: Element) -> Any:
        _require_text(elem, False)
        _forbid_children(elem)
        return factory()

    return _build


def _named(factory: Callable[[str], Any]) -> Callable[[Element], Any]:
    def _build(elem: Element) -> Any:
        _require_text(elem, True)
        return factory(_text(elem))

    return _build


def _string_literal(elem: Element) -> StringLiteral:
    # Empty literal is allowed so that e.g. an empty classifier can be matched
    _forbid_children(elem)
    return StringLiteral(_text(elem))


_STRING_GRAMMAR: dict[str, Callable[[Element], StringExpression]] = {
    "groupId": _leaf(GroupId),
    "artifactId": _leaf(ArtifactId),
    "extension": _leaf(Extension),
    "classifier": _leaf(Classifier),
    "version": _leaf(Version),
    "string": _string_literal,
    "property": _named(Property),
    "null": _leaf(Null),
}


def _parse_string(elem: Element) -> StringExpression:
    name = _local_name(elem.tag)
    builder = _STRING_GRAMMAR.get(name)
    if builder is None:
        raise MalformedExpression(f"Unable to parse string expression: unknown XML node name: {name}")
    return builder(elem)


def _parse_not(elem: Element) -> Not:
    _require_text(elem, False)
    _require_children(elem, 1)
    return Not(_parse_boolean(elem[0]))


def _parse_variadic(factory: Callable[[tuple[BooleanExpression, ...]], Any]) -> Callable[[Element], Any]:
    def _build(elem: Element) -> Any:
        _require_text(elem, False)
        return factory(tuple(_parse_boolean(child) for child in elem))

    return _build


def _parse_equals(elem: Element) -> Equals:
    _require_text(elem, False)
    _require_children(elem, 2)
    return Equals(_parse_string(elem[0]), _parse_string(elem[1]))


_BOOLEAN_GRAMMAR: dict[str, Callable[[Element], BooleanExpression]] = {
    "true": _leaf(lambda: BooleanLiteral(True)),
    "false": _leaf(lambda: BooleanLiteral(False)),
    "not": _parse_not,
    "and": _parse_variadic(And),
    "or": _parse_variadic(Or),
    "xor": _parse_variadic(Xor),
    "equals": _parse_equals,
    "defined": _named(Defined),
}


def _parse_boolean(elem: Element) -> BooleanExpression:
    name = _local_name(elem.tag)
    builder = _BOOLEAN_GRAMMAR.get(name)
    if builder is None:
        raise MalformedExpression(f"Unable to parse boolean expression: unknown XML node name: {name}")
    return builder(elem)


# --- evaluation ---


def _evaluate_string(expr: StringExpression, context: ArtifactContext) -> Optional[str]:
    coord = context.coordinate
    if isinstance(expr, GroupId):
        return coord.group_id
    if isinstance(expr, ArtifactId):
        return coord.artifact_id
    if isinstance(expr, Extension):
        return coord.extension
    if isinstance(expr, Classifier):
        return coord.classifier
    if isinstance(expr, Version):
        return coord.version
    if isinstance(expr, StringLiteral):
        return expr.value
    if isinstance(expr, Property):
        return context.properties.get(expr.name)
    if isinstance(expr, Null):
        return None
    raise TypeError(f"not a string expression: {expr!r}")


def evaluate(expr: BooleanExpression, context: ArtifactContext) -> bool:
    """Evaluate a boolean expression against an artifact context."""
    if isinstance(expr, BooleanLiteral):
        return expr.value
    if isinstance(expr, Not):
        return not evaluate(expr.operand, context)
    if isinstance(expr, And):
        return all(evaluate(op, context) for op in expr.operands)
    if isinstance(expr, Or):
        return any(evaluate(op, context) for op in expr.operands)
    if isinstance(expr, Xor):
        result = False
        for op in expr.operands:
            result ^= evaluate(op, context)
        return result
    if isinstance(expr, Equals):
        # None only equals None
        return _evaluate_string(expr.left, context) == _evaluate_string(expr.right, context)
    if isinstance(expr, Defined):
        return expr.name in context.properties
    raise TypeError(f"not a boolean expression: {expr!r}")


@dataclass(frozen=True)
class Condition:
    """A parsed condition document. Immutable once parsed."""

    expression: BooleanExpression

    def evaluate(self, context: ArtifactContext) -> bool:
        return evaluate(self.expression, context)

    def matches(self, coordinate: ArtifactCoordinate, properties: Optional[Mapping[str, str]] = None) -> bool:
        return self.evaluate(ArtifactContext(coordinate=coordinate, properties=properties or {}))


ALWAYS = Condition(BooleanLiteral(True))


def parse_condition(document: Union[Element, str, bytes, None]) -> Condition:
    """Parse a condition document.

    ``document`` may be an already-parsed element, XML text, or ``None``
    (treated as the literal ``true``). The document element must have
    exactly one child holding the boolean expression.
    """
    if document is None:
        return ALWAYS

    if isinstance(document, (str, bytes)):
        try:
            root = ET.fromstring(document)
        except (ET.ParseError, DefusedXmlException) as e:
            raise MalformedExpression(f"Unable to parse condition document: {e}") from e
    else:
        root = document

    _require_children(root, 1)
    return Condition(_parse_boolean(root[0]))


__all__ = [
    "ArtifactContext",
    "Condition",
    "ALWAYS",
    "parse_condition",
    "evaluate",
    "GroupId",
    "ArtifactId",
    "Extension",
    "Classifier",
    "Version",
    "StringLiteral",
    "Property",
    "Null",
    "BooleanLiteral",
    "Not",
    "And",
    "Or",
    "Xor",
    "Equals",
    "Defined",
    "StringExpression",
    "BooleanExpression",
]
