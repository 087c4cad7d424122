from __future__ import annotations

from typing import Any, Mapping, Protocol

from .errors import ValidationError
from .options import (
    DeleteFolderOptions,
    ItemsOptions,
    SearchOptions,
    SharedLinkOptions,
    as_mapping,
)

COLLABORATION_ROLES = {
    "editor",
    "viewer",
    "previewer",
    "uploader",
    "previewer uploader",
    "viewer uploader",
    "co-owner",
}


class Requester(Protocol):
    async def request(
        self,
        path,
        method: str = "GET",
        *,
        query: Mapping | None = None,
        body: Mapping | None = None,
        extra: Mapping | None = None,
        headers: Mapping | None = None,
    ) -> Any: ...


def require_id(value: object, name: str = "id") -> str:
    """Accept an ``int`` or a string of digits; Box ids are numeric."""
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be numeric.")
    if isinstance(value, int) and value >= 0:
        return str(value)
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return value
    raise ValidationError(f"{name} must be numeric.")


def require_name(value: object, name: str = "name") -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string.")
    return value


def require_mapping(value: object, name: str = "fields") -> dict:
    if not isinstance(value, Mapping):
        raise ValidationError(f"A {name} object must be provided.")
    return dict(value)


class Resource:
    def __init__(self, connection: Requester) -> None:
        self._connection = connection

    async def _request(self, path, method: str = "GET", **kwargs) -> Any:
        return await self._connection.request(path, method, **kwargs)


class Folders(Resource):
    """Folder endpoints. The root folder of every account has id ``0``."""

    async def get_info(self, id, headers: Mapping | None = None) -> Any:
        folder_id = require_id(id)
        return await self._request(["folders", folder_id], "GET", headers=headers)

    async def get_items(
        self,
        id,
        options: ItemsOptions | Mapping | None = None,
        headers: Mapping | None = None,
    ) -> Any:
        folder_id = require_id(id)
        return await self._request(
            ["folders", folder_id, "items"],
            "GET",
            query=as_mapping(options),
            headers=headers,
        )

    async def create(self, name: str, parent_id, headers: Mapping | None = None) -> Any:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Invalid params. Required - name: string, parent_id: number")
        try:
            parent = require_id(parent_id, "parent_id")
        except ValidationError:
            raise ValidationError(
                "Invalid params. Required - name: string, parent_id: number"
            ) from None
        return await self._request(
            ["folders"],
            "POST",
            body={"name": name, "parent": {"id": parent}},
            headers=headers,
        )

    async def update(self, id, fields: Mapping, headers: Mapping | None = None) -> Any:
        """Update folder attributes; moving a folder is an update of ``parent``.

        Pass ``{"If-Match": etag}`` in ``headers`` to only update the version
        you know about.
        """
        folder_id = require_id(id)
        body = require_mapping(fields)
        return await self._request(["folders", folder_id], "PUT", body=body, headers=headers)

    async def delete(
        self,
        id,
        options: DeleteFolderOptions | Mapping | None = None,
        headers: Mapping | None = None,
    ) -> Any:
        folder_id = require_id(id)
        return await self._request(
            ["folders", folder_id],
            "DELETE",
            query=as_mapping(options),
            headers=headers,
        )

    async def copy(
        self,
        id,
        parent_id,
        name: str | None = None,
        headers: Mapping | None = None,
    ) -> Any:
        try:
            folder_id = require_id(id)
            parent = require_id(parent_id, "parent_id")
        except ValidationError:
            raise ValidationError("Invalid params. Required - id: number, parent_id: number") from None

        body: dict[str, Any] = {"parent": {"id": parent}}
        if name:
            body["name"] = require_name(name)
        return await self._request(["folders", folder_id, "copy"], "POST", body=body, headers=headers)

    async def shared_link(
        self,
        id,
        options: SharedLinkOptions | Mapping | None,
        headers: Mapping | None = None,
    ) -> Any:
        """Create or change the folder's shared link; ``None`` removes it."""
        folder_id = require_id(id)
        return await self._request(
            ["folders", folder_id],
            "PUT",
            body={"shared_link": as_mapping(options, "options")},
            headers=headers,
        )

    async def get_collaborations(self, id, headers: Mapping | None = None) -> Any:
        folder_id = require_id(id)
        return await self._request(["folders", folder_id, "collaborations"], "GET", headers=headers)

    async def get_trashed_items(
        self,
        options: ItemsOptions | Mapping | None = None,
        headers: Mapping | None = None,
    ) -> Any:
        return await self._request(
            ["folders", "trash", "items"],
            "GET",
            query=as_mapping(options),
            headers=headers,
        )

    async def get_trashed(self, id, headers: Mapping | None = None) -> Any:
        folder_id = require_id(id)
        return await self._request(["folders", folder_id, "trash"], "GET", headers=headers)

    async def delete_trashed(self, id, headers: Mapping | None = None) -> Any:
        folder_id = require_id(id)
        return await self._request(["folders", folder_id, "trash"], "DELETE", headers=headers)

    async def restore_trashed(
        self,
        id,
        name: str | None = None,
        parent_id=None,
        headers: Mapping | None = None,
    ) -> Any:
        """Restore a trashed folder.

        ``name`` and ``parent_id`` are only needed when the original parent is
        gone or now holds an item with the same name.
        """
        folder_id = require_id(id)
        body: dict[str, Any] = {}
        if name is not None:
            body["name"] = require_name(name)
        if parent_id is not None:
            body["parent"] = {"id": require_id(parent_id, "parent_id")}
        return await self._request(["folders", folder_id], "POST", body=body, headers=headers)


class Files(Resource):
    async def get_info(self, id, headers: Mapping | None = None) -> Any:
        file_id = require_id(id)
        return await self._request(["files", file_id], "GET", headers=headers)

    async def update(self, id, fields: Mapping, headers: Mapping | None = None) -> Any:
        file_id = require_id(id)
        body = require_mapping(fields)
        return await self._request(["files", file_id], "PUT", body=body, headers=headers)

    async def delete(self, id, headers: Mapping | None = None) -> Any:
        file_id = require_id(id)
        return await self._request(["files", file_id], "DELETE", headers=headers)

    async def copy(
        self,
        id,
        parent_id,
        name: str | None = None,
        headers: Mapping | None = None,
    ) -> Any:
        try:
            file_id = require_id(id)
            parent = require_id(parent_id, "parent_id")
        except ValidationError:
            raise ValidationError("Invalid params. Required - id: number, parent_id: number") from None

        body: dict[str, Any] = {"parent": {"id": parent}}
        if name:
            body["name"] = require_name(name)
        return await self._request(["files", file_id, "copy"], "POST", body=body, headers=headers)

    async def shared_link(
        self,
        id,
        options: SharedLinkOptions | Mapping | None,
        headers: Mapping | None = None,
    ) -> Any:
        file_id = require_id(id)
        return await self._request(
            ["files", file_id],
            "PUT",
            body={"shared_link": as_mapping(options, "options")},
            headers=headers,
        )

    async def get_trashed(self, id, headers: Mapping | None = None) -> Any:
        file_id = require_id(id)
        return await self._request(["files", file_id, "trash"], "GET", headers=headers)

    async def delete_trashed(self, id, headers: Mapping | None = None) -> Any:
        file_id = require_id(id)
        return await self._request(["files", file_id, "trash"], "DELETE", headers=headers)

    async def restore_trashed(
        self,
        id,
        name: str | None = None,
        parent_id=None,
        headers: Mapping | None = None,
    ) -> Any:
        file_id = require_id(id)
        body: dict[str, Any] = {}
        if name is not None:
            body["name"] = require_name(name)
        if parent_id is not None:
            body["parent"] = {"id": require_id(parent_id, "parent_id")}
        return await self._request(["files", file_id], "POST", body=body, headers=headers)


class Collaborations(Resource):
    async def get(self, id, headers: Mapping | None = None) -> Any:
        collaboration_id = require_id(id)
        return await self._request(["collaborations", collaboration_id], "GET", headers=headers)

    async def add(
        self,
        folder_id,
        accessible_by: str | Mapping,
        role: str,
        notify: bool | None = None,
        headers: Mapping | None = None,
    ) -> Any:
        """Invite a user or group to a folder.

        A plain string for ``accessible_by`` is taken as a user's login email.
        """
        item_id = require_id(folder_id, "folder_id")
        if isinstance(accessible_by, str) and accessible_by.strip():
            grantee: dict[str, Any] = {"login": accessible_by, "type": "user"}
        elif isinstance(accessible_by, Mapping) and accessible_by:
            grantee = dict(accessible_by)
        else:
            raise ValidationError("accessible_by must be a login or a mapping.")
        if role not in COLLABORATION_ROLES:
            raise ValidationError(f"role must be one of: {', '.join(sorted(COLLABORATION_ROLES))}")

        return await self._request(
            ["collaborations"],
            "POST",
            query={"notify": notify},
            body={
                "item": {"id": item_id, "type": "folder"},
                "accessible_by": grantee,
                "role": role,
            },
            headers=headers,
        )

    async def update(
        self,
        id,
        role: str | None = None,
        status: str | None = None,
        headers: Mapping | None = None,
    ) -> Any:
        collaboration_id = require_id(id)
        body: dict[str, Any] = {}
        if role is not None:
            if role not in COLLABORATION_ROLES:
                raise ValidationError(
                    f"role must be one of: {', '.join(sorted(COLLABORATION_ROLES))}"
                )
            body["role"] = role
        if status is not None:
            if status not in {"accepted", "rejected"}:
                raise ValidationError("status must be 'accepted' or 'rejected'.")
            body["status"] = status
        if not body:
            raise ValidationError("Nothing to update; pass role and/or status.")
        return await self._request(
            ["collaborations", collaboration_id], "PUT", body=body, headers=headers
        )

    async def delete(self, id, headers: Mapping | None = None) -> Any:
        collaboration_id = require_id(id)
        return await self._request(["collaborations", collaboration_id], "DELETE", headers=headers)

    async def get_pending(self, headers: Mapping | None = None) -> Any:
        return await self._request(
            ["collaborations"], "GET", query={"status": "pending"}, headers=headers
        )


class Users(Resource):
    async def get_current(self, headers: Mapping | None = None) -> Any:
        return await self._request(["users", "me"], "GET", headers=headers)


async def search(
    connection: Requester,
    query: str,
    options: SearchOptions | Mapping | None = None,
    headers: Mapping | None = None,
) -> Any:
    if not isinstance(query, str) or not query.strip():
        raise ValidationError("query must be a non-empty string.")
    params = {"query": query, **(as_mapping(options) or {})}
    return await connection.request(["search"], "GET", query=params, headers=headers)
