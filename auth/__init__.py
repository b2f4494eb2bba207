"""auth/ -- Credential lifecycle and access control for OpsMind Auth.

Layer rule: auth/ imports only core/, stdlib, and third-party libraries.
It does NOT import from api/ or admin/.
api/ and admin/ import from auth/, not the other way around.
"""
