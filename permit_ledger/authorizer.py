"""Permit authorization pipeline.

`authorize(permit, requested_permission)` resolves a permit to the account it
speaks for. Steps run in order and stop at the first failure:

1. load the contract identity (LEDGER_E_UNINITIALIZED before init)
2. verify the permit through the injected oracle (signature, contract and
   network binding, revocation)
3. take the signer account the oracle resolved
4. check the requested permission is granted (MissingPermission lists the
   full granted set)

Nothing is written and nothing about the permit is kept.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .constants import ConstantsStore
from .errors import AuthFailureKind, LedgerError, auth_failure, missing_permission
from .permits import Permit, PermitPermission, PermitVerifier

logger = logging.getLogger("permit_ledger")


@dataclass
class AuthorizationContext:
    """State threaded through the pipeline for one decision."""
    permit: Permit
    requested: str
    contract_identity: Optional[str] = None
    account: Optional[str] = None


@dataclass(frozen=True)
class AuthorizationResult:
    """Tagged outcome: either an account or the error that stopped the pipeline."""
    ok: bool
    account: Optional[str] = None
    error: Optional[LedgerError] = None
    failed_step: Optional[str] = None


Step = Callable[[AuthorizationContext], None]


class PermitAuthorizer:
    """Decides whether a permit may read, and on behalf of which account."""

    def __init__(self, constants: ConstantsStore, verifier: PermitVerifier, network_id: str):
        self.constants = constants
        self.verifier = verifier
        self.network_id = network_id

    @property
    def steps(self) -> List[Tuple[str, Step]]:
        return [
            ("load_contract_identity", self.load_contract_identity),
            ("verify_permit", self.verify_permit),
            ("resolve_account", self.resolve_account),
            ("check_permission", self.check_permission),
        ]

    def load_contract_identity(self, ctx: AuthorizationContext) -> None:
        ctx.contract_identity = self.constants.get()

    def verify_permit(self, ctx: AuthorizationContext) -> None:
        ctx.account = self.verifier.verify(ctx.permit, ctx.contract_identity, self.network_id)

    def resolve_account(self, ctx: AuthorizationContext) -> None:
        if not isinstance(ctx.account, str) or not ctx.account:
            raise auth_failure(AuthFailureKind.MALFORMED, "Permit signer could not be resolved to an account")

    def check_permission(self, ctx: AuthorizationContext) -> None:
        if not ctx.permit.check_permission(ctx.requested):
            raise missing_permission(ctx.requested, ctx.permit.granted)

    def evaluate(self, permit: Permit, requested_permission: "PermitPermission | str") -> AuthorizationResult:
        requested = (
            requested_permission.value
            if isinstance(requested_permission, PermitPermission)
            else str(requested_permission)
        )
        ctx = AuthorizationContext(permit=permit, requested=requested)
        for name, step in self.steps:
            try:
                step(ctx)
            except LedgerError as e:
                logger.info("permit %r rejected at %s: %s", permit.permit_name, name, e.code)
                return AuthorizationResult(ok=False, error=e, failed_step=name)
        return AuthorizationResult(ok=True, account=ctx.account)

    def authorize(self, permit: Permit, requested_permission: "PermitPermission | str") -> str:
        """Return the resolved account identity or raise the pipeline's error."""
        result = self.evaluate(permit, requested_permission)
        if not result.ok:
            raise result.error
        return result.account
