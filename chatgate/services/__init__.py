"""Domain services: entitlement, models, quota, relay, usage, payments, reconciliation."""
