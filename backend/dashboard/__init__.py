"""Review API models, configuration and HTTP client."""
