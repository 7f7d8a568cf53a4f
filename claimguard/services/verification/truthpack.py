"""
Truthpack verifier

Checks API endpoints, environment variables and type references against the
generated ground-truth registry (``routes.json``, ``env.json``,
``contracts.json``, ``auth.json`` under the truthpack directory).
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from claimguard.models import Claim, ClaimType, SourceEvidence, VerificationSource
from claimguard.services.cache import FileCache

from .base import BaseSourceVerifier, VerificationContext, env_variable_name

logger = logging.getLogger(__name__)

TRUTHPACK_FILES = ("routes", "env", "contracts", "auth")
DEFAULT_TTL_SECONDS = 5 * 60

_PARAM_PREFIXES = (":", "[", "{")
_WILDCARDS = ("*", "**")


def _read_json(path: Path) -> Optional[Any]:
    if not path.is_file():
        return None
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)
    except json.JSONDecodeError as exc:
        logger.warning(f"Ignoring malformed truthpack file {path}: {exc}")
        return None


def _entries(document: Any, key: str) -> List[Dict[str, Any]]:
    """Accept both a bare list and ``{key: [...]}`` layouts."""
    if isinstance(document, dict):
        document = document.get(key, [])
    if not isinstance(document, list):
        return []
    return [item for item in document if isinstance(item, dict)]


def paths_match(claimed: str, defined: str) -> bool:
    """
    Compare a concrete path with a route pattern.

    Segments of ``defined`` starting with ``:``, ``[`` or ``{`` are
    parameters; ``*`` and ``**`` match any single segment.
    """
    if claimed == defined:
        return True

    claimed_parts = [part for part in claimed.split("/") if part]
    defined_parts = [part for part in defined.split("/") if part]
    if len(claimed_parts) != len(defined_parts):
        return False

    for claimed_part, defined_part in zip(claimed_parts, defined_parts):
        if defined_part.startswith(_PARAM_PREFIXES) or defined_part in _WILDCARDS:
            continue
        if claimed_part != defined_part:
            return False
    return True


class TruthpackVerifier(BaseSourceVerifier):
    """Consults the generated routes/env/contracts registry."""

    name = VerificationSource.TRUTHPACK
    claim_types = frozenset(
        {ClaimType.API_ENDPOINT, ClaimType.ENV_VARIABLE, ClaimType.TYPE_REFERENCE}
    )

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, cache: Optional[FileCache] = None) -> None:
        super().__init__(cache or FileCache(ttl_seconds))

    async def load(self, truthpack_path: Path) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for name in TRUTHPACK_FILES:
            document = await self.cache.get(truthpack_path / f"{name}.json", _read_json)
            if document is not None:
                data[name] = document
        return data

    async def _verify(self, claim: Claim, context: VerificationContext, started: float) -> SourceEvidence:
        truthpack = await self.load(context.truthpack_path)

        if claim.type == ClaimType.API_ENDPOINT:
            return self._verify_route(claim, truthpack, started)
        if claim.type == ClaimType.ENV_VARIABLE:
            return self._verify_env(claim, truthpack, started)
        if claim.type == ClaimType.TYPE_REFERENCE:
            return self._verify_type(claim, truthpack, started)
        return self._unsupported(claim, started)

    def _verify_route(self, claim: Claim, truthpack: Dict[str, Any], started: float) -> SourceEvidence:
        routes = _entries(truthpack.get("routes"), "routes")
        if not routes:
            return self._evidence(False, 0.5, started, reason="No routes found in truthpack")

        for route in routes:
            route_path = str(route.get("path", ""))
            if route_path and paths_match(claim.value, route_path):
                location = {"file": route["file"], "line": route.get("line")} if route.get("file") else None
                return self._evidence(
                    True,
                    1.0,
                    started,
                    matchedRoute=route_path,
                    method=route.get("method"),
                    location=location,
                    exactMatch=claim.value == route_path,
                )

        return self._evidence(
            False,
            0.95,
            started,
            reason="Route not found in truthpack",
            searchedValue=claim.value,
            availableRoutes=[str(route.get("path")) for route in routes[:5]],
        )

    def _verify_env(self, claim: Claim, truthpack: Dict[str, Any], started: float) -> SourceEvidence:
        variables = _entries(truthpack.get("env"), "variables")
        if not variables:
            return self._evidence(False, 0.5, started, reason="No env variables found in truthpack")

        var_name = env_variable_name(claim.value)
        for variable in variables:
            if variable.get("name") == var_name:
                used_in = variable.get("usedIn") or []
                first_use = used_in[0] if used_in and isinstance(used_in[0], dict) else None
                return self._evidence(
                    True,
                    1.0,
                    started,
                    variableName=var_name,
                    required=variable.get("required"),
                    location=first_use,
                )

        return self._evidence(
            False,
            0.95,
            started,
            reason="Environment variable not found in truthpack",
            searchedValue=var_name,
        )

    def _verify_type(self, claim: Claim, truthpack: Dict[str, Any], started: float) -> SourceEvidence:
        contracts = _entries(truthpack.get("contracts"), "contracts")
        if not contracts:
            return self._evidence(False, 0.3, started, reason="No contracts/types found in truthpack")

        for contract in contracts:
            if contract.get("name") == claim.value:
                location = {"file": contract["file"]} if contract.get("file") else None
                return self._evidence(
                    True,
                    1.0,
                    started,
                    typeName=claim.value,
                    contractType=contract.get("type"),
                    location=location,
                )

        return self._evidence(
            False,
            0.7,
            started,
            reason="Type not found in truthpack contracts",
            searchedValue=claim.value,
        )
