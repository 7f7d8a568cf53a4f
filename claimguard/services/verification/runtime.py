"""
Runtime verifier

Reads the live process environment. Only presence is reported; variable
values never leave this module.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional

from claimguard.models import Claim, ClaimType, SourceEvidence, VerificationSource

from .base import BaseSourceVerifier, VerificationContext, env_variable_name


class RuntimeVerifier(BaseSourceVerifier):
    """Checks environment variables against the running process."""

    name = VerificationSource.RUNTIME
    claim_types = frozenset({ClaimType.ENV_VARIABLE, ClaimType.API_ENDPOINT})

    def __init__(self, environ: Optional[Mapping[str, str]] = None) -> None:
        super().__init__()
        self._environ = environ

    @property
    def environ(self) -> Mapping[str, str]:
        return self._environ if self._environ is not None else os.environ

    async def _verify(self, claim: Claim, context: VerificationContext, started: float) -> SourceEvidence:
        if claim.type != ClaimType.ENV_VARIABLE:
            # Endpoints would need a live server; stay offline
            return self._unsupported(claim, started, confidence=0.3)

        var_name = env_variable_name(claim.value)
        if var_name in self.environ:
            return self._evidence(
                True,
                0.99,
                started,
                variableName=var_name,
                exists=True,
                hasValue=bool(self.environ[var_name]),
            )

        return self._evidence(
            False,
            0.99,
            started,
            reason="Environment variable not set in current process",
            variableName=var_name,
        )
