"""
Cache Value Objects

Immutable value objects for the cache domain. Invalidation targets are
a tagged variant: a domain model, a tag in one namespace or a tag
across every namespace.
"""

from dataclasses import dataclass
from typing import Union


class InvalidRuleError(ValueError):
    """Raised when an invalidation rule or target is malformed."""


def _validate_token(value: str, what: str) -> None:
    if not value:
        raise InvalidRuleError(f"{what} cannot be empty")
    if any(char.isspace() for char in value):
        raise InvalidRuleError(f"{what} cannot contain whitespace: {value!r}")


@dataclass(frozen=True)
class ModelTarget:
    """
    Invalidate the cached data of a domain model.

    Routed to the model invalidator, by entity id when the event carries
    one, otherwise for the whole collection.
    """

    model: str

    def __post_init__(self) -> None:
        _validate_token(self.model, "Model name")

    def __str__(self) -> str:
        return f"model:{self.model}"


@dataclass(frozen=True)
class NamespacedTag:
    """Invalidate one tag in one registered cache namespace."""

    namespace: str
    tag: str

    def __post_init__(self) -> None:
        _validate_token(self.namespace, "Cache namespace")
        _validate_token(self.tag, "Cache tag")

    def __str__(self) -> str:
        return f"{self.namespace}:{self.tag}"


@dataclass(frozen=True)
class GenericTag:
    """Invalidate a cross-cutting tag in every registered cache namespace."""

    tag: str

    def __post_init__(self) -> None:
        _validate_token(self.tag, "Cache tag")

    def __str__(self) -> str:
        return self.tag


InvalidationTarget = Union[ModelTarget, NamespacedTag, GenericTag]


def parse_target(target: Union[str, InvalidationTarget]) -> InvalidationTarget:
    """
    Build a target from its string form.

    ``model:X`` becomes a ModelTarget, ``namespace:tag`` a NamespacedTag
    (split on the first colon only) and any bare string a GenericTag.
    Target objects are returned unchanged.
    """
    if isinstance(target, (ModelTarget, NamespacedTag, GenericTag)):
        return target
    if not isinstance(target, str):
        raise InvalidRuleError(f"Unsupported invalidation target: {target!r}")

    if target.startswith("model:"):
        return ModelTarget(target[len("model:"):])
    if ":" in target:
        namespace, tag = target.split(":", 1)
        return NamespacedTag(namespace, tag)
    return GenericTag(target)
