"""Centinela audit log table (SQLAlchemy Core).

The table name is configurable, so the table is built per name instead of being
a declarative model. Structured parts of a record are stored as JSON text.
"""

from typing import Optional

from sqlalchemy import BigInteger, Column, DateTime, Index, Integer, MetaData, String, Table, Text, func


def build_centinela_table(name: str, metadata: Optional[MetaData] = None) -> Table:
    metadata = metadata if metadata is not None else MetaData()
    table = Table(
        name,
        metadata,
        Column("id", BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True),
        Column("request_id", String(64), nullable=False),
        Column("created_at", DateTime, nullable=False, server_default=func.now()),
        Column("method", String(16), nullable=False),
        Column("uri", Text, nullable=False),
        Column("path", Text, nullable=False),
        Column("query", Text, nullable=True),
        Column("query_params_json", Text, nullable=True),
        Column("ip", String(45), nullable=True),
        Column("user_agent", Text, nullable=True),
        Column("content_type", String(255), nullable=True),
        Column("content_length", String(64), nullable=True),
        Column("headers_json", Text, nullable=True),
        Column("body", Text, nullable=True),
        Column("decoded_body_json", Text, nullable=True),
        Column("uploaded_files_json", Text, nullable=True),
        Column("route_json", Text, nullable=True),
        Column("response_headers_json", Text, nullable=True),
        Column("status_code", Integer, nullable=True),
        Column("duration_ms", Integer, nullable=True),
    )
    Index(f"ix_{name}_request_id", table.c.request_id)
    return table
