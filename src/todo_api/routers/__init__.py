"""HTTP routers for the Todo API."""
