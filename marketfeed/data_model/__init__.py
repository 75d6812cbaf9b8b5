"""Shared data model primitives."""

from marketfeed.data_model.base import StrictBaseModel


__all__ = ["StrictBaseModel"]
