"""Record collections exposed by the backend and how to talk to them."""

from .base import ACTION, CREATE, DELETE, UPDATE, ActionSpec, FilterSpec, ResourceSpec
from .registry import RESOURCES, get_resource, list_resources

__all__ = [
    "ACTION",
    "CREATE",
    "DELETE",
    "UPDATE",
    "ActionSpec",
    "FilterSpec",
    "ResourceSpec",
    "RESOURCES",
    "get_resource",
    "list_resources",
]
