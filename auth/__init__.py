"""auth/ -- Authentication and authorization package.

Layer rule: auth/ imports only stdlib + third-party libraries (plus fastapi in
auth/dependencies.py). It does NOT import from api/, notify/, or core/;
configuration arrives as an AuthConfig built by the caller.
api/ imports from auth/, not the other way around.
"""
