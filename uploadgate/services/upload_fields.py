# uploadgate/services/upload_fields.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Protocol, Tuple

from uploadgate.auth.deps import Principal
from uploadgate.core.errors import NotFound
from uploadgate.core.settings import StorageDisk, UploadFieldConfig


class AuthorizationProvider(Protocol):
    def is_allowed(self, principal: Principal, field: UploadFieldConfig) -> bool: ...


class RoleAuthorizationProvider:
    """Allow when uploads are enabled and the caller holds one of the field's roles (if any)."""

    def is_allowed(self, principal: Principal, field: UploadFieldConfig) -> bool:
        if not field.can_upload:
            return False
        if not field.allowed_roles:
            return True
        return bool(principal.roles.intersection(field.allowed_roles))


@dataclass(frozen=True)
class AuthorizationContext:
    """Per-request resolution of caller + upload field + storage target."""

    principal: Principal
    resource: str
    resource_id: str
    field: UploadFieldConfig
    disk_name: str
    disk: StorageDisk
    allowed: bool

    def is_allowed(self) -> bool:
        return self.allowed

    @property
    def bucket(self) -> str:
        return self.disk.bucket

    @property
    def keep_original_name(self) -> bool:
        return self.field.keep_original_name

    @property
    def storage_prefix(self) -> Optional[str]:
        if not self.field.storage_path:
            return None
        return self.field.storage_path.format(resource=self.resource, resource_id=self.resource_id)


class UploadFieldRegistry:
    def __init__(
        self,
        fields: Iterable[UploadFieldConfig],
        disks: Dict[str, StorageDisk],
        provider: Optional[AuthorizationProvider] = None,
    ):
        self._fields: Dict[Tuple[str, str], UploadFieldConfig] = {(f.resource, f.field): f for f in fields}
        self._disks = dict(disks)
        self._provider = provider or RoleAuthorizationProvider()

    def find(self, resource: str, field: str) -> Optional[UploadFieldConfig]:
        return self._fields.get((resource, field))

    def resolve(self, principal: Principal, resource: str, resource_id: str, field: str) -> AuthorizationContext:
        cfg = self.find(resource, field)
        if cfg is None:
            raise NotFound(f"no upload field '{field}' on resource '{resource}'", code="field_not_found")

        return AuthorizationContext(
            principal=principal,
            resource=resource,
            resource_id=resource_id,
            field=cfg,
            disk_name=cfg.disk,
            disk=self._disks[cfg.disk],
            allowed=self._provider.is_allowed(principal, cfg),
        )
