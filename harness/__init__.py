"""Test-support utilities: fixtures, database reset/restore, GraphQL and polling helpers."""
