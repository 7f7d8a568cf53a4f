import json
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT))

from claimguard.models import Claim, ClaimType, VerificationSource  # noqa: E402
from claimguard.services.verification import (  # noqa: E402
    BaseSourceVerifier,
    FilesystemVerifier,
    PackageManifestVerifier,
    PatternMatchVerifier,
    RuntimeVerifier,
    TruthpackVerifier,
    TypeCheckerVerifier,
    VerificationContext,
    VersionControlVerifier,
)
from claimguard.services.verification.base import package_root_name  # noqa: E402
from claimguard.services.verification.truthpack import paths_match  # noqa: E402


def make_claim(claim_type, value, claim_id="c1"):
    return Claim(id=claim_id, type=claim_type, value=value)


def write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


@pytest.fixture
def context(tmp_path):
    return VerificationContext.for_project(tmp_path)


# ---------------------------------------------------------------------------
# Truthpack
# ---------------------------------------------------------------------------


def write_truthpack(root: Path, name: str, document) -> None:
    write(root / ".claimguard" / "truthpack" / f"{name}.json", json.dumps(document))


def test_paths_match_parameter_segments():
    assert paths_match("/api/users/42", "/api/users/:id")
    assert paths_match("/api/users/42", "/api/users/[id]")
    assert paths_match("/api/users/42", "/api/users/{id}")
    assert paths_match("/api/users/42", "/api/users/*")
    assert not paths_match("/api/users/42/posts", "/api/users/:id")
    assert not paths_match("/api/orders/42", "/api/users/:id")


@pytest.mark.asyncio
async def test_truthpack_confirms_known_route(tmp_path, context):
    write_truthpack(tmp_path, "routes", [
        {"path": "/api/users/:id", "method": "GET", "file": "src/routes/users.ts", "line": 12},
    ])
    evidence = await TruthpackVerifier().verify(make_claim(ClaimType.API_ENDPOINT, "/api/users/42"), context)

    assert evidence.source == VerificationSource.TRUTHPACK
    assert evidence.verified is True
    assert evidence.confidence == 1.0
    assert evidence.details["matchedRoute"] == "/api/users/:id"
    assert evidence.details["location"] == {"file": "src/routes/users.ts", "line": 12}


@pytest.mark.asyncio
async def test_truthpack_route_miss_lists_available_routes(tmp_path, context):
    write_truthpack(tmp_path, "routes", {"routes": [{"path": f"/api/r{i}"} for i in range(8)]})
    evidence = await TruthpackVerifier().verify(make_claim(ClaimType.API_ENDPOINT, "/api/ghost"), context)

    assert evidence.verified is False
    assert evidence.confidence == 0.95
    assert len(evidence.details["availableRoutes"]) == 5


@pytest.mark.asyncio
async def test_truthpack_empty_registry_confidences(context):
    verifier = TruthpackVerifier()

    route = await verifier.verify(make_claim(ClaimType.API_ENDPOINT, "/api/x"), context)
    env = await verifier.verify(make_claim(ClaimType.ENV_VARIABLE, "API_KEY"), context)
    type_ref = await verifier.verify(make_claim(ClaimType.TYPE_REFERENCE, "User"), context)

    assert (route.verified, route.confidence) == (False, 0.5)
    assert (env.verified, env.confidence) == (False, 0.5)
    assert (type_ref.verified, type_ref.confidence) == (False, 0.3)


@pytest.mark.asyncio
async def test_truthpack_env_and_contracts(tmp_path, context):
    write_truthpack(tmp_path, "env", {"variables": [{"name": "DATABASE_URL", "required": True}]})
    write_truthpack(tmp_path, "contracts", [{"name": "User", "type": "interface", "file": "src/types.ts"}])
    verifier = TruthpackVerifier()

    env_hit = await verifier.verify(make_claim(ClaimType.ENV_VARIABLE, "process.env.DATABASE_URL"), context)
    env_miss = await verifier.verify(make_claim(ClaimType.ENV_VARIABLE, "REDIS_URL"), context)
    type_hit = await verifier.verify(make_claim(ClaimType.TYPE_REFERENCE, "User"), context)
    type_miss = await verifier.verify(make_claim(ClaimType.TYPE_REFERENCE, "Account"), context)

    assert (env_hit.verified, env_hit.confidence) == (True, 1.0)
    assert env_hit.details["required"] is True
    assert (env_miss.verified, env_miss.confidence) == (False, 0.95)
    assert (type_hit.verified, type_hit.confidence) == (True, 1.0)
    assert (type_miss.verified, type_miss.confidence) == (False, 0.7)


@pytest.mark.asyncio
async def test_truthpack_cache_until_invalidated(tmp_path, context):
    routes_file = tmp_path / ".claimguard" / "truthpack" / "routes.json"
    write_truthpack(tmp_path, "routes", [{"path": "/api/old"}])
    verifier = TruthpackVerifier()
    claim = make_claim(ClaimType.API_ENDPOINT, "/api/new")

    assert (await verifier.verify(claim, context)).verified is False

    write_truthpack(tmp_path, "routes", [{"path": "/api/new"}])
    assert (await verifier.verify(claim, context)).verified is False

    verifier.invalidate(routes_file)
    assert (await verifier.verify(claim, context)).verified is True


@pytest.mark.asyncio
async def test_truthpack_skips_malformed_file(tmp_path, context):
    write(tmp_path / ".claimguard" / "truthpack" / "routes.json", "{not json")
    evidence = await TruthpackVerifier().verify(make_claim(ClaimType.API_ENDPOINT, "/api/x"), context)

    assert evidence.error is None
    assert evidence.confidence == 0.5


# ---------------------------------------------------------------------------
# Package manifest
# ---------------------------------------------------------------------------


@pytest.fixture
def manifest(tmp_path):
    return write(tmp_path / "package.json", json.dumps({
        "dependencies": {"lodash": "^4.17.21", "@tanstack/react-query": "^5.0.0"},
        "devDependencies": {"vitest": "^1.0.0"},
    }))


def test_package_root_name():
    assert package_root_name("lodash/get") == "lodash"
    assert package_root_name("@scope/pkg/sub/path") == "@scope/pkg"
    assert package_root_name("node:fs") == "fs"


@pytest.mark.asyncio
async def test_manifest_confirms_declared_dependency(manifest, context):
    evidence = await PackageManifestVerifier().verify(make_claim(ClaimType.PACKAGE_DEPENDENCY, "lodash"), context)

    assert evidence.verified is True
    assert evidence.confidence == 1.0
    assert evidence.details["version"] == "^4.17.21"
    assert evidence.details["dependencyType"] == "dependencies"


@pytest.mark.asyncio
async def test_manifest_resolves_subpaths_and_scopes(manifest, context):
    verifier = PackageManifestVerifier()

    subpath = await verifier.verify(make_claim(ClaimType.IMPORT, "lodash/debounce"), context)
    scoped = await verifier.verify(make_claim(ClaimType.IMPORT, "@tanstack/react-query/devtools"), context)
    dev = await verifier.verify(make_claim(ClaimType.IMPORT, "vitest"), context)

    assert subpath.verified and scoped.verified and dev.verified
    assert dev.details["dependencyType"] == "devDependencies"


@pytest.mark.asyncio
async def test_manifest_builtins_need_no_manifest(context):
    verifier = PackageManifestVerifier()

    for specifier in ("fs", "node:path", "fs/promises", "node:child_process"):
        evidence = await verifier.verify(make_claim(ClaimType.IMPORT, specifier), context)
        assert evidence.verified is True
        assert evidence.details["isBuiltin"] is True


@pytest.mark.asyncio
async def test_manifest_miss_and_missing_manifest(tmp_path, context):
    verifier = PackageManifestVerifier()
    claim = make_claim(ClaimType.PACKAGE_DEPENDENCY, "left-pad")

    no_manifest = await verifier.verify(claim, context)
    assert (no_manifest.verified, no_manifest.confidence) == (False, 0.5)

    write(tmp_path / "package.json", json.dumps({"dependencies": {}}))
    verifier.invalidate()
    miss = await verifier.verify(claim, context)
    assert (miss.verified, miss.confidence) == (False, 0.99)


@pytest.mark.asyncio
async def test_manifest_unparseable_file_counts_as_unloaded(tmp_path, context):
    verifier = PackageManifestVerifier()
    claim = make_claim(ClaimType.IMPORT, "lodash")

    write(tmp_path / "package.json", "{oops")
    malformed = await verifier.verify(claim, context)
    (tmp_path / "package.json").write_bytes(b"\xff\xfe\x00{}")
    verifier.invalidate()
    undecodable = await verifier.verify(claim, context)

    for evidence in (malformed, undecodable):
        assert evidence.error is None
        assert (evidence.verified, evidence.confidence) == (False, 0.5)
        assert evidence.details["reason"] == "Could not load package.json"


# ---------------------------------------------------------------------------
# Filesystem
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_filesystem_missing_relative_import(context):
    evidence = await FilesystemVerifier().verify(make_claim(ClaimType.IMPORT, "./utils/helper"), context)

    assert evidence.verified is False
    assert evidence.confidence == 0.85
    assert ".ts" in evidence.details["triedExtensions"]


@pytest.mark.asyncio
async def test_filesystem_resolves_relative_to_claiming_file(tmp_path):
    write(tmp_path / "src" / "utils" / "helper.ts", "export const x = 1;")
    context = VerificationContext.for_project(tmp_path, file_path="src/index.ts")

    evidence = await FilesystemVerifier().verify(make_claim(ClaimType.IMPORT, "./utils/helper"), context)

    assert evidence.verified is True
    assert evidence.confidence == 1.0
    assert evidence.details["resolvedPath"] == str(Path("src/utils/helper.ts"))


@pytest.mark.asyncio
async def test_filesystem_rejects_paths_outside_project(tmp_path):
    root = tmp_path / "project"
    write(root / "src" / "index.ts", "")
    write(tmp_path / "secrets.ts", "export const key = 1;")
    context = VerificationContext.for_project(root, file_path="src/index.ts")

    escaped = await FilesystemVerifier().verify(make_claim(ClaimType.IMPORT, "../../secrets"), context)

    assert escaped.verified is False
    assert escaped.details["reason"] == "Resolves outside the project root"


@pytest.mark.asyncio
async def test_filesystem_index_fallback(tmp_path, context):
    write(tmp_path / "components" / "button" / "index.tsx", "export {};")
    evidence = await FilesystemVerifier().verify(
        make_claim(ClaimType.FILE_REFERENCE, "./components/button"), context
    )

    assert evidence.verified is True
    assert evidence.confidence == 0.9


@pytest.mark.asyncio
async def test_filesystem_bare_specifier_is_not_its_concern(context):
    evidence = await FilesystemVerifier().verify(make_claim(ClaimType.IMPORT, "react"), context)

    assert (evidence.verified, evidence.confidence) == (False, 0.3)


@pytest.mark.asyncio
async def test_filesystem_env_files(tmp_path, context):
    write(tmp_path / ".env.example", "# SECRET_TOKEN=abc\nAPI_KEY=\n")
    verifier = FilesystemVerifier()

    declared = await verifier.verify(make_claim(ClaimType.ENV_VARIABLE, "API_KEY"), context)
    commented = await verifier.verify(make_claim(ClaimType.ENV_VARIABLE, "SECRET_TOKEN"), context)

    assert declared.verified is True
    assert declared.details["foundIn"] == ".env.example"
    assert declared.details["isExample"] is True
    assert declared.details["line"] == 2
    assert (commented.verified, commented.confidence) == (False, 0.85)


# ---------------------------------------------------------------------------
# Pattern match
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_pattern_match_finds_declarations(tmp_path, context):
    write(tmp_path / "src" / "api.ts", "import x from 'y';\nexport async function fetchUser(id: string) {}\n")
    write(tmp_path / "src" / "types.ts", "export interface UserProfile {\n  id: string;\n}\n")
    verifier = PatternMatchVerifier()

    function = await verifier.verify(make_claim(ClaimType.FUNCTION_CALL, "fetchUser"), context)
    type_ref = await verifier.verify(make_claim(ClaimType.TYPE_REFERENCE, "UserProfile"), context)

    assert (function.verified, function.confidence) == (True, 0.9)
    assert function.details["location"] == {"file": str(Path("src/api.ts")), "line": 2}
    assert (type_ref.verified, type_ref.confidence) == (True, 0.9)


@pytest.mark.asyncio
async def test_pattern_match_ignores_vendored_code(tmp_path, context):
    write(tmp_path / "node_modules" / "lib" / "index.js", "function hiddenHelper() {}\n")
    write(tmp_path / "src" / "types.d.ts", "declare function hiddenHelper(): void;\n")
    evidence = await PatternMatchVerifier().verify(make_claim(ClaimType.FUNCTION_CALL, "hiddenHelper"), context)

    assert (evidence.verified, evidence.confidence) == (False, 0.9)
    assert evidence.details["filesSearched"] == 0


@pytest.mark.asyncio
async def test_pattern_match_unsupported_type(context):
    evidence = await PatternMatchVerifier().verify(make_claim(ClaimType.ENV_VARIABLE, "X"), context)

    assert (evidence.verified, evidence.confidence) == (False, 0.3)


# ---------------------------------------------------------------------------
# Version control
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_version_control_requires_repository(tmp_path, context):
    write(tmp_path / "src" / "a.ts", "")
    evidence = await VersionControlVerifier().verify(make_claim(ClaimType.FILE_REFERENCE, "src/a.ts"), context)

    assert (evidence.verified, evidence.confidence) == (False, 0.3)


@pytest.mark.asyncio
async def test_version_control_presence_in_work_tree(tmp_path, context):
    (tmp_path / ".git").mkdir()
    write(tmp_path / "src" / "a.ts", "")
    verifier = VersionControlVerifier()

    present = await verifier.verify(make_claim(ClaimType.FILE_REFERENCE, "src/a.ts"), context)
    function = await verifier.verify(make_claim(ClaimType.FUNCTION_CALL, "doThing"), context)

    assert (present.verified, present.confidence) == (True, 0.8)
    assert present.details["tracked"] is True
    assert (function.verified, function.confidence) == (False, 0.7)


@pytest.mark.asyncio
async def test_version_control_ignores_paths_outside_repository(tmp_path):
    root = tmp_path / "project"
    (root / ".git").mkdir(parents=True)
    write(tmp_path / "outside.ts", "")
    context = VerificationContext.for_project(root)
    verifier = VersionControlVerifier()

    parent = await verifier.verify(make_claim(ClaimType.FILE_REFERENCE, "../outside.ts"), context)
    absolute = await verifier.verify(make_claim(ClaimType.FILE_REFERENCE, str(tmp_path / "outside.ts")), context)

    assert (parent.verified, parent.details["reason"]) == (False, "Outside the repository")
    assert absolute.verified is False


# ---------------------------------------------------------------------------
# Type checker
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_type_checker_needs_tsconfig(context):
    evidence = await TypeCheckerVerifier().verify(make_claim(ClaimType.TYPE_REFERENCE, "Widget"), context)

    assert (evidence.verified, evidence.confidence) == (False, 0.5)


@pytest.mark.asyncio
async def test_type_checker_declarations_and_type_packages(tmp_path, context):
    write(tmp_path / "tsconfig.json", "{}")
    write(tmp_path / "types" / "global.d.ts", "declare interface Widget {\n  id: number;\n}\n")
    (tmp_path / "node_modules" / "@types" / "express").mkdir(parents=True)
    write(tmp_path / "node_modules" / "zod" / "package.json", json.dumps({"types": "index.d.ts"}))
    verifier = TypeCheckerVerifier()

    declared = await verifier.verify(make_claim(ClaimType.TYPE_REFERENCE, "Widget"), context)
    typed_pkg = await verifier.verify(make_claim(ClaimType.IMPORT, "express"), context)
    typed_field = await verifier.verify(make_claim(ClaimType.IMPORT, "zod"), context)
    untyped = await verifier.verify(make_claim(ClaimType.IMPORT, "left-pad"), context)

    assert (declared.verified, declared.confidence) == (True, 0.98)
    assert declared.details["definedAt"] == str(Path("types/global.d.ts"))
    assert (typed_pkg.verified, typed_pkg.confidence) == (True, 0.95)
    assert typed_field.verified is True
    assert (untyped.verified, untyped.confidence) == (False, 0.5)


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_runtime_reports_presence_not_value(context):
    verifier = RuntimeVerifier(environ={"API_KEY": "super-secret", "EMPTY": ""})

    present = await verifier.verify(make_claim(ClaimType.ENV_VARIABLE, "process.env.API_KEY"), context)
    empty = await verifier.verify(make_claim(ClaimType.ENV_VARIABLE, "EMPTY"), context)
    missing = await verifier.verify(make_claim(ClaimType.ENV_VARIABLE, "NOPE"), context)

    assert (present.verified, present.confidence) == (True, 0.99)
    assert present.details["hasValue"] is True
    assert "super-secret" not in json.dumps(present.details)
    assert empty.details["hasValue"] is False
    assert (missing.verified, missing.confidence) == (False, 0.99)


@pytest.mark.asyncio
async def test_runtime_reads_process_environment(monkeypatch, context):
    monkeypatch.setenv("CLAIMGUARD_TEST_VAR", "1")
    evidence = await RuntimeVerifier().verify(make_claim(ClaimType.ENV_VARIABLE, "CLAIMGUARD_TEST_VAR"), context)

    assert evidence.verified is True


@pytest.mark.asyncio
async def test_runtime_stays_offline_for_endpoints(context):
    evidence = await RuntimeVerifier().verify(make_claim(ClaimType.API_ENDPOINT, "/api/x"), context)

    assert (evidence.verified, evidence.confidence) == (False, 0.3)


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


class ExplodingVerifier(BaseSourceVerifier):
    name = VerificationSource.FILESYSTEM
    claim_types = frozenset({ClaimType.IMPORT})

    async def _verify(self, claim, context, started):
        raise RuntimeError("disk on fire")


@pytest.mark.asyncio
async def test_verifier_failure_becomes_error_evidence(context):
    evidence = await ExplodingVerifier().verify(make_claim(ClaimType.IMPORT, "./x"), context)

    assert evidence.error == "disk on fire"
    assert evidence.verified is False
    assert evidence.confidence == 0.0
    assert evidence.is_valid is False


def test_supports_matches_declared_claim_types():
    assert TruthpackVerifier().supports(ClaimType.API_ENDPOINT)
    assert not TruthpackVerifier().supports(ClaimType.IMPORT)
    assert PackageManifestVerifier().supports(ClaimType.PACKAGE_DEPENDENCY)
    assert RuntimeVerifier().supports(ClaimType.ENV_VARIABLE)
    assert not VersionControlVerifier().supports(ClaimType.ENV_VARIABLE)
