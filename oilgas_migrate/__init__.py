"""
Oil & Gas Legacy Migration

A batch conversion toolkit for moving legacy oil & gas desktop databases
(exported as CSV tables) into a multi-tenant relational store.

Supports:
- Schema discovery with relationship and dependency inference
- Industry normalization (pipe grades, sizes, connections, customer names, work orders)
- Configurable validation rules with a data quality score
- Parallel table processing with a single aggregating job owner
- CSV, SQL script and direct database export
"""

__version__ = "0.1.0"
