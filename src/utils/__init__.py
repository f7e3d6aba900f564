"""
Utils package.

Models Structure:
- All models are Pydantic models (https://docs.pydantic.dev/).
- All calendar dates are ``datetime.date`` and are stored as ISO ``YYYY-MM-DD`` strings.
- All money amounts are ``Decimal`` and are stored as DynamoDB numbers, never floats.
- All models that need to be persisted to DynamoDB MUST implement:
    - `to_dynamodb_item()`: return a dictionary of DynamoDB supported types
      (String, Number, List, Map) keyed by the camelCase field aliases.
    - `from_dynamodb_item(data: dict)`: class method that rebuilds the model,
      including nested occurrences, from an item as read from DynamoDB.
"""
