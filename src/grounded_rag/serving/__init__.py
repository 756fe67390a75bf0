"""
Serving — FastAPI application for document upload and grounded Q&A.

Owners are identified by the request path; authentication is handled
in front of this service.
"""
