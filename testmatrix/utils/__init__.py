"""Shared helpers: configuration, logging, errors and workbook I/O."""
