"""
Per-tenant SLA threshold provider.

The only place thresholds are ever written. Every SLA clock call receives
thresholds resolved here rather than fetching tenant state on its own.
"""
from typing import Dict, Optional

from cardflow.config import settings
from cardflow.core.logging import get_logger
from cardflow.errors import ConfigValidationError, PersistenceFailure
from cardflow.models.domain import SlaThresholds
from cardflow.services.collaborators import SlaConfigStore

logger = get_logger("sla_config")

MIN_WARNING_HOURS = 1
MAX_BREACH_HOURS = 720

DEFAULT_THRESHOLDS = SlaThresholds(
    warning_hours=settings.sla_default_warning_hours,
    breach_hours=settings.sla_default_breach_hours,
)


def validate_thresholds(thresholds: SlaThresholds) -> None:
    """Raise ConfigValidationError unless 1 <= warning < breach <= 720."""
    if thresholds.warning_hours < MIN_WARNING_HOURS:
        raise ConfigValidationError("warning ≥ 1")
    if thresholds.breach_hours <= thresholds.warning_hours:
        raise ConfigValidationError("breach > warning")
    if thresholds.breach_hours > MAX_BREACH_HOURS:
        raise ConfigValidationError("breach ≤ 720")


class InMemorySlaConfigStore:
    """Dict-backed store for tests and single-process hosts."""

    def __init__(self):
        self._data: Dict[str, SlaThresholds] = {}

    def get(self, tenant_id: str) -> Optional[SlaThresholds]:
        return self._data.get(tenant_id)

    def put(self, tenant_id: str, thresholds: SlaThresholds) -> None:
        self._data[tenant_id] = thresholds


class SlaConfigProvider:
    """Resolves and saves tenant thresholds, caching resolved values per tenant."""

    def __init__(self, store: SlaConfigStore, defaults: SlaThresholds = DEFAULT_THRESHOLDS):
        self.store = store
        self.defaults = defaults
        self._cache: Dict[str, SlaThresholds] = {}

    def load(self, tenant_id: Optional[str]) -> SlaThresholds:
        """
        Thresholds for a tenant, or the platform defaults.

        Defaults apply when no tenant is given (platform admins), nothing is
        stored, or the stored value no longer passes validation.
        """
        if not tenant_id:
            return self.defaults
        if tenant_id in self._cache:
            return self._cache[tenant_id]

        stored = self.store.get(tenant_id)
        resolved = self.defaults
        if stored is not None:
            try:
                validate_thresholds(stored)
                resolved = stored
            except ConfigValidationError as e:
                logger.warning(
                    f"Ignoring stored SLA thresholds: {e.reason}",
                    extra={"tenant_id": tenant_id},
                )

        self._cache[tenant_id] = resolved
        return resolved

    def save(self, thresholds: SlaThresholds, tenant_id: Optional[str]) -> bool:
        """
        Validate then store thresholds for a tenant.

        Raises ConfigValidationError before the store is touched. Returns
        False when there is no tenant or the store fails, True once saved.
        """
        validate_thresholds(thresholds)
        if not tenant_id:
            return False

        try:
            self.store.put(tenant_id, thresholds)
        except PersistenceFailure as e:
            logger.warning(f"SLA config save failed: {e.message}", extra={"tenant_id": tenant_id})
            return False

        self._cache[tenant_id] = thresholds
        logger.info(
            f"SLA thresholds saved: warning={thresholds.warning_hours}h breach={thresholds.breach_hours}h",
            extra={"tenant_id": tenant_id},
        )
        return True

    def invalidate(self, tenant_id: Optional[str] = None) -> None:
        """Drop cached thresholds for one tenant, or all."""
        if tenant_id is None:
            self._cache.clear()
        else:
            self._cache.pop(tenant_id, None)
