"""Audit-file validation entry point (28 numbered tests)."""

from __future__ import annotations

from lxml import etree

from backend.core.logging import get_logger

from .checks import read_audit_file, run_checks
from .report import ValidationReport
from .structural import (
    get_validation_mode,
    parse_document,
    strip_namespaces,
    validate_structure,
    validate_with_official_schema,
)

logger = get_logger(__name__)


def validate_audit_file(document: str | bytes) -> ValidationReport:
    """Validate any SAF-T XML document; never raises on content problems.

    A document that is not well-formed XML yields a single synthetic failure
    (test #0) with ``total_tests == 0``.
    """

    try:
        root = parse_document(document)
    except etree.XMLSyntaxError as err:
        logger.info("Audit file is not well-formed XML: %s", err)
        return ValidationReport.parse_failure(f"XML parse error: {err}")

    structural_errors = []
    if get_validation_mode() == "official":
        structural_errors.extend(validate_with_official_schema(root))

    strip_namespaces(root)
    structural_errors.extend(validate_structure(root))

    view = read_audit_file(root, structural_errors)
    report = ValidationReport.from_results(run_checks(view))
    logger.info(
        "Audit file validated: %d passed, %d failed, %d warnings",
        report.passed,
        report.failed,
        report.warnings,
    )
    return report
