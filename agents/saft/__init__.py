"""SAF-T (D406) audit-file generation and validation."""

from .dto import (
    Account,
    Address,
    AnalysisType,
    AuditFileDocument,
    AuditFileHeader,
    CompanyProfile,
    InvoiceLineRecord,
    InvoiceRecord,
    Party,
    TaxInformation,
    TaxTableEntry,
    TenantSnapshot,
    Transaction,
    TransactionLine,
    build_invoice_line,
    compute_line_amounts,
    quantize_money,
)
from .errors import DataFetchFailed, MissingMasterAccount, SaftError
from .ledger import build_audit_file, build_header, compute_closing_balances
from .profiles import CompanyProfileProvider, validate_profile_for_saft, validate_required_accounts
from .report import FAIL, PASS, WARNING, ValidationReport, ValidationResult
from .serializer import SAFT_NAMESPACE, HeaderMetadata, serialize_audit_file, version
from .service import (
    ExportMetadata,
    ScheduledRunSummary,
    generate_audit_file,
    previous_month_period,
    run_scheduled_generation,
)
from .sinks import DirectoryExportSink, ExportRecord, ExportSink, InMemoryExportSink
from .snapshot import JsonSnapshotSource, parse_snapshot, validate_snapshot
from .sources import InMemoryLedgerSource, LedgerSource, fetch_snapshot
from .structural import XSDValidationError, validate_structure
from .summary import build_report_md, mask_pii, write_report_markdown
from .validator import validate_audit_file

__all__ = [
    "Account",
    "Address",
    "AnalysisType",
    "AuditFileDocument",
    "AuditFileHeader",
    "CompanyProfile",
    "InvoiceLineRecord",
    "InvoiceRecord",
    "Party",
    "TaxInformation",
    "TaxTableEntry",
    "TenantSnapshot",
    "Transaction",
    "TransactionLine",
    "build_invoice_line",
    "compute_line_amounts",
    "quantize_money",
    "SaftError",
    "MissingMasterAccount",
    "DataFetchFailed",
    "build_audit_file",
    "build_header",
    "compute_closing_balances",
    "CompanyProfileProvider",
    "validate_profile_for_saft",
    "validate_required_accounts",
    "PASS",
    "FAIL",
    "WARNING",
    "ValidationReport",
    "ValidationResult",
    "SAFT_NAMESPACE",
    "HeaderMetadata",
    "serialize_audit_file",
    "version",
    "ExportMetadata",
    "ScheduledRunSummary",
    "generate_audit_file",
    "previous_month_period",
    "run_scheduled_generation",
    "ExportRecord",
    "ExportSink",
    "InMemoryExportSink",
    "DirectoryExportSink",
    "JsonSnapshotSource",
    "parse_snapshot",
    "validate_snapshot",
    "LedgerSource",
    "InMemoryLedgerSource",
    "fetch_snapshot",
    "XSDValidationError",
    "validate_structure",
    "build_report_md",
    "mask_pii",
    "write_report_markdown",
    "validate_audit_file",
]
