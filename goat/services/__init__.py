"""Core domain services. Each function takes the session and organization_id explicitly."""
