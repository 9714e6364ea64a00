from __future__ import annotations

import pytest

from agents.saft.ledger import build_audit_file
from agents.saft.samples import SAMPLE_PERIOD, build_sample_profile, build_sample_snapshot
from agents.saft.serializer import serialize_audit_file
from tests.saft.factories import CREATED_AT, TENANT


@pytest.fixture
def sample_document():
    return build_audit_file(
        build_sample_profile(TENANT), build_sample_snapshot(), *SAMPLE_PERIOD, created_at=CREATED_AT
    )


@pytest.fixture
def sample_xml(sample_document) -> str:
    xml, _ = serialize_audit_file(sample_document)
    return xml
