import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT))

from claimguard.models import ClaimType  # noqa: E402
from claimguard.services.firewall import ClaimExtractor  # noqa: E402

SAMPLE = """import { debounce } from 'lodash';
import helper from './utils/helper';
const url = process.env.API_URL;
const key = import.meta.env.VITE_KEY;
fetch('/api/users/42');
function load(profile: UserProfile): string {}
const cfg = require('./config.json');
"""


def values(claims, claim_type):
    return [claim.value for claim in claims if claim.type == claim_type]


@pytest.fixture
def claims():
    return ClaimExtractor(source="src/app.ts").extract(SAMPLE)


def test_extracts_every_claim_kind(claims):
    assert values(claims, ClaimType.IMPORT) == ["lodash", "./utils/helper"]
    assert values(claims, ClaimType.PACKAGE_DEPENDENCY) == ["lodash"]
    assert values(claims, ClaimType.ENV_VARIABLE) == ["API_URL", "VITE_KEY"]
    assert values(claims, ClaimType.API_ENDPOINT) == ["/api/users/42"]
    assert values(claims, ClaimType.TYPE_REFERENCE) == ["UserProfile"]
    assert values(claims, ClaimType.FILE_REFERENCE) == ["./config.json"]
    assert values(claims, ClaimType.FUNCTION_CALL) == []


def test_locations_and_context(claims):
    env = next(claim for claim in claims if claim.value == "API_URL")

    assert env.location.line == 3
    assert env.location.column == SAMPLE.splitlines()[2].index("API_URL") + 1
    assert env.location.length == len("API_URL")
    assert "process.env.API_URL" in env.context
    assert env.raw_confidence == 0.8


def test_ids_are_deterministic(claims):
    again = ClaimExtractor(source="src/app.ts").extract(SAMPLE)

    assert [claim.id for claim in claims] == [claim.id for claim in again]
    assert len({claim.id for claim in claims}) == len(claims)
    assert all(claim.id.startswith("claim-") for claim in claims)


def test_ids_depend_on_source():
    content = "const a = process.env.TOKEN;"

    first = ClaimExtractor().extract(content, source="a.ts")[0]
    second = ClaimExtractor().extract(content, source="b.ts")[0]

    assert first.id != second.id


def test_builtin_types_are_skipped():
    claims = ClaimExtractor().extract("async function f(): Promise<User> {}\nlet x: string;\nlet y: Record<string, number>;")

    assert values(claims, ClaimType.TYPE_REFERENCE) == []


def test_lowercase_annotations_are_not_types():
    claims = ClaimExtractor().extract("const options = { retries: count };")

    assert values(claims, ClaimType.TYPE_REFERENCE) == []


def test_relative_imports_are_not_dependencies():
    claims = ClaimExtractor().extract("import x from '../shared/x';\nimport * as path from 'path';")

    assert values(claims, ClaimType.IMPORT) == ["../shared/x", "path"]
    assert values(claims, ClaimType.PACKAGE_DEPENDENCY) == ["path"]


def test_stats_cover_every_type():
    claims, stats = ClaimExtractor(confidence=0.6).extract_with_stats(SAMPLE)

    assert stats.total_claims == len(claims)
    assert sum(stats.by_type.values()) == stats.total_claims
    assert set(stats.by_type) == {claim_type.value for claim_type in ClaimType}
    assert stats.avg_confidence == pytest.approx(0.6)


def test_empty_content():
    claims, stats = ClaimExtractor().extract_with_stats("")

    assert claims == []
    assert stats.total_claims == 0
    assert stats.avg_confidence == 0.0
