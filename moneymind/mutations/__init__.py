"""Mutation coordinator package."""

from moneymind.mutations.coordinator import (
    EntityKind,
    MutationAction,
    Payload,
    as_payload_dict,
    mutate,
    update_settings,
)

__all__ = [
    "EntityKind",
    "MutationAction",
    "Payload",
    "as_payload_dict",
    "mutate",
    "update_settings",
]
