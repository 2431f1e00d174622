"""
Utils Module - Infrastructure Utilities
=======================================

Modules:
    logger: Console and JSON-lines logging with rotation, component ids and
        PII redaction for exchange logs
"""
