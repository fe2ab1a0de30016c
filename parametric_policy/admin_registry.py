"""
============================================================================
Parametric Policy - Admin Registry
============================================================================

Authorization gate for every mutating policy operation except funding,
revival and the scheduler hooks.

The admin set is seeded from:
    - the configured admin list
    - the policy holder's address
    - the policy instance's own address

ERROR CODES:
    - POL-001: Caller is not an admin

============================================================================
"""

from typing import Iterable, Optional, Set, Tuple
import logging

from parametric_policy.errors import OnlyAdminAllowed, PolicyErrorCode

logger = logging.getLogger(__name__)


class AdminRegistry:
    """
    Set-backed admin membership.

    Example Usage:
        registry = AdminRegistry(["0xadmin"], holder_address="0xholder",
                                 instance_address="0xpolicy")
        registry.require_admin("0xadmin", "terminate_policy")
    """

    def __init__(
        self,
        admins: Iterable[str],
        holder_address: str,
        instance_address: str
    ) -> None:
        self._admins: Set[str] = set()
        for address in list(admins) + [holder_address, instance_address]:
            normalized = self._normalize(address)
            if normalized:
                self._admins.add(normalized)

        logger.info(
            f"[ADMIN-REGISTRY] Initialized | "
            f"admin_count={len(self._admins)} | instance={instance_address}"
        )

    @staticmethod
    def _normalize(address: Optional[str]) -> Optional[str]:
        if address is None:
            return None
        address = str(address).strip()
        return address or None

    @property
    def admins(self) -> Tuple[str, ...]:
        """Sorted snapshot of the admin set."""
        return tuple(sorted(self._admins))

    def is_admin(self, caller: Optional[str]) -> bool:
        """Return True if caller is in the admin set. Blank callers never are."""
        normalized = self._normalize(caller)
        if normalized is None:
            return False
        return normalized in self._admins

    def require_admin(self, caller: Optional[str], operation: str) -> None:
        """
        Raise OnlyAdminAllowed unless caller is an admin.

        Args:
            caller: Address attempting the operation
            operation: Operation name, for the audit log
        """
        if not self.is_admin(caller):
            logger.error(
                f"[{PolicyErrorCode.ONLY_ADMIN_ALLOWED}] Unauthorized caller | "
                f"operation={operation} | caller={caller}"
            )
            raise OnlyAdminAllowed(f"{caller} may not call {operation}")

    def __contains__(self, caller: object) -> bool:
        return isinstance(caller, str) and self.is_admin(caller)

    def __len__(self) -> int:
        return len(self._admins)


__all__ = ["AdminRegistry"]
