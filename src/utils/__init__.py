"""
Utils package.

Conventions:
- All persisted models are Pydantic models with camelCase aliases.
- All dates are epoch timestamps (milliseconds since 1970-01-01T00:00:00Z).
- Persisted models implement `to_dynamodb_item()` / `from_dynamodb_item()`
  so they can round-trip through any RecordStore.
"""
