from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping

from .errors import ValidationError


class _Options:
    """Shared rendering for option structs: unset (``None``) fields are left out."""

    def to_dict(self) -> dict[str, Any]:
        return {
            item.name: getattr(self, item.name)
            for item in fields(self)
            if getattr(self, item.name) is not None
        }


@dataclass
class ItemsOptions(_Options):
    """``fields``, ``limit`` and ``offset`` for listing calls."""

    fields: str | list[str] | None = None
    limit: int | None = None
    offset: int | None = None


@dataclass
class DeleteFolderOptions(_Options):
    recursive: bool | None = None


@dataclass
class SearchOptions(_Options):
    scope: str | None = None
    file_extensions: str | list[str] | None = None
    created_at_range: str | None = None
    updated_at_range: str | None = None
    size_range: str | None = None
    owner_user_ids: str | list[str] | None = None
    ancestor_folder_ids: str | list[str] | None = None
    content_types: str | list[str] | None = None
    type: str | None = None
    trash_content: str | None = None
    fields: str | list[str] | None = None
    limit: int | None = None
    offset: int | None = None


@dataclass
class SharedLinkOptions(_Options):
    access: str | None = None
    unshared_at: str | None = None
    password: str | None = None
    can_download: bool | None = None
    can_preview: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        permissions = {}
        for key in ("can_download", "can_preview"):
            if key in payload:
                permissions[key] = payload.pop(key)
        if permissions:
            payload["permissions"] = permissions
        return payload


def as_mapping(options: _Options | Mapping | None, name: str = "options") -> dict[str, Any] | None:
    if options is None:
        return None
    if isinstance(options, _Options):
        return options.to_dict()
    if isinstance(options, Mapping):
        return dict(options)
    raise ValidationError(f"{name} must be a mapping or an options object.")
