"""HealSync FHIR transformation and audit trail engine."""

__version__ = "0.1.0"
