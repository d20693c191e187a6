from __future__ import annotations
import abc
from typing import Dict, Iterable, List, Optional

from .types import Tenant


class TenantDirectory(abc.ABC):
    """Tenant profiles (timezone) and sensor bindings, owned elsewhere."""

    @abc.abstractmethod
    async def list_tenants(self) -> List[str]: ...

    @abc.abstractmethod
    async def get_timezone(self, tenant_id: str) -> Optional[str]: ...

    @abc.abstractmethod
    async def get_sensor_ids(self, tenant_id: str) -> List[str]: ...


class InMemoryTenantDirectory(TenantDirectory):
    def __init__(self):
        self._tenants: Dict[str, Tenant] = {}

    def add_tenant(
        self,
        tenant_id: str,
        *,
        timezone: Optional[str] = None,
        sensor_ids: Iterable[str] = (),
    ) -> Tenant:
        # device records without a usable sensor id are ignored
        tenant = Tenant(
            tenant_id=tenant_id,
            timezone=timezone,
            sensor_ids=[s for s in sensor_ids if isinstance(s, str) and s],
        )
        self._tenants[tenant_id] = tenant
        return tenant

    async def list_tenants(self) -> List[str]:
        return list(self._tenants)

    async def get_timezone(self, tenant_id: str) -> Optional[str]:
        tenant = self._tenants.get(tenant_id)
        return tenant.timezone if tenant else None

    async def get_sensor_ids(self, tenant_id: str) -> List[str]:
        tenant = self._tenants.get(tenant_id)
        return list(tenant.sensor_ids) if tenant else []
