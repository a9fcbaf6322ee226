"""GraphQL surface over the platform models (schema, request context, loaders)."""
