"""
AuditWatch services: registries, orchestration, aggregation, scheduling and alerting.
"""
