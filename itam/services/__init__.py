"""Services layered on top of the REST client."""
