"""Centinela: request/response audit logging."""

from .body_capture import BODY_OMITTED, TRUNCATION_MARKER, capture_body, decode_body
from .db_logger import CentinelaDatabaseLogger
from .diagnostics import SinkDiagnostics
from .dispatcher import CentinelaDispatcher
from .file_logger import CentinelaFileLogger
from .record_builder import ResponseSnapshot, build_record, generate_request_id
from .redaction import REDACT_KEYS, REDACTED, RedactionPolicy, redact_fields
