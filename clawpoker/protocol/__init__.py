"""HTTP request and response schemas."""
