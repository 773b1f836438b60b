"""Shared data model primitives."""

from feedrank.data_model.base import StrictBaseModel
from feedrank.data_model.kinds import ItemKind


__all__ = ["ItemKind", "StrictBaseModel"]
