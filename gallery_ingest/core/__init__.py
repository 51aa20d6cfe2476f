"""Core domain types: enums, schemas, extraction models and exceptions."""
