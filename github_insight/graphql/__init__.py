"""GraphQL query documents and response parsing for the GitHub v4 API."""
