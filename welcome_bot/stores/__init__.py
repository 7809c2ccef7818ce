"""Durable bot state: welcome content and the welcomed set."""

from .dedup_store import DedupStore, dedup_key
from .json_document import JsonDocument, PersistenceError
from .welcome_store import GLOBAL_SCOPE, WelcomeStore, resolve_scope

__all__ = [
    "DedupStore",
    "GLOBAL_SCOPE",
    "JsonDocument",
    "PersistenceError",
    "WelcomeStore",
    "dedup_key",
    "resolve_scope",
]
