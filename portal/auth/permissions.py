"""
Authorization: role -> (resource, action) registry and enforcement.

Handles:
- In-memory permission map built from role_permissions
- Role/permission mutations (written through to the store, then rebuilt)
- Authorization decisions and denial auditing

The enforcer is a set-membership test and nothing else: no hierarchy, no
wildcards, no special role names. ADMIN gets its reach from being granted
every permission at seed time.
"""
import logging
import threading

from .errors import PermissionDenied, RoleNotFound
from .store import CredentialStore
from .types import Authorized

logger = logging.getLogger(__name__)


class PermissionRegistry:
    """
    Process-local cache of role grants.

    Every mutation goes through this class and rebuilds the map under the
    lock before returning, so the next authorization check in the process
    sees the write.
    """

    def __init__(self, store: CredentialStore):
        self.store = store
        self._lock = threading.RLock()
        self._grants: dict[str, frozenset[tuple[str, str]]] = {}
        self.reload()

    def reload(self):
        """Rebuild the map from the store."""
        grants = self.store.load_role_permissions()
        with self._lock:
            self._grants = {role: frozenset(pairs) for role, pairs in grants.items()}
        logger.debug(f"Permission registry loaded: {len(grants)} roles")

    # =========================================================================
    # Queries
    # =========================================================================

    def has_permission(self, role: str, resource: str, action: str) -> bool:
        with self._lock:
            return (resource, action) in self._grants.get(role, frozenset())

    def permissions_for(self, role: str) -> frozenset[tuple[str, str]]:
        with self._lock:
            return self._grants.get(role, frozenset())

    def roles(self) -> list[str]:
        with self._lock:
            return sorted(self._grants)

    # =========================================================================
    # Mutations
    # =========================================================================

    def grant(self, role: str, resource: str, action: str) -> bool:
        with self._lock:
            added = self.store.grant(role, resource, action)
            self.reload()
        if added:
            logger.info(f"Granted {resource}:{action} to role {role}")
        return added

    def revoke(self, role: str, resource: str, action: str) -> bool:
        with self._lock:
            if role not in self._grants:
                raise RoleNotFound(f"Role '{role}' not found")
            removed = self.store.revoke(role, resource, action)
            self.reload()
        if removed:
            logger.info(f"Revoked {resource}:{action} from role {role}")
        return removed

    def create_permission(self, resource: str, action: str, description: str = None) -> bool:
        with self._lock:
            created = self.store.create_permission(resource, action, description)
            self.reload()
        return created

    def delete_permission(self, resource: str, action: str) -> bool:
        with self._lock:
            deleted = self.store.delete_permission(resource, action)
            self.reload()
        if deleted:
            logger.info(f"Deleted permission {resource}:{action}")
        return deleted

    def create_role(self, name: str, description: str = None):
        with self._lock:
            self.store.create_role(name, description)
            self.reload()
        logger.info(f"Role created: {name}")


class PermissionEnforcer:
    """Allow/deny decisions against the registry. Denials are audited."""

    def __init__(self, registry: PermissionRegistry, audit=None):
        self.registry = registry
        self.audit = audit

    def authorize(self, username: str, role: str, resource: str, action: str) -> Authorized:
        """Return Authorized or raise PermissionDenied."""
        if self.registry.has_permission(role, resource, action):
            return Authorized(username=username, role=role, resource=resource, action=action)

        logger.warning(f"Permission denied: user={username} role={role} required={resource}:{action}")
        if self.audit is not None:
            self.audit.record_denial(username, role, resource, action)
        raise PermissionDenied(
            f"{username} ({role}) lacks {resource}:{action}",
            resource=resource,
            action=action,
        )
