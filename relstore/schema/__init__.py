"""
Schema module for relstore.

This module provides the type system for tables, including:
- Compiled field types (Scalar, ArrayOf, Reference, ArrayReference)
- The schema compiler and the compiled SchemaSet
- The type validator used on every mutation

Invariants:
    - Schemas are compiled once, at database creation or load
    - Compiled schemas never change afterwards
    - Type tokens are parsed only by the compiler
"""

from .compiler import SchemaSet, compile_schemas, parse_type_token
from .types import (
    ArrayOf,
    ArrayReference,
    FieldSpec,
    FieldType,
    Reference,
    Scalar,
    ScalarKind,
    TableSchema,
)
from .validator import TypeValidator

__all__ = [
    # Types
    "ArrayOf",
    "ArrayReference",
    "FieldSpec",
    "FieldType",
    "Reference",
    "Scalar",
    "ScalarKind",
    "TableSchema",
    # Compiler
    "SchemaSet",
    "compile_schemas",
    "parse_type_token",
    # Validation
    "TypeValidator",
]
