"""auth/ -- Credential store, token service, auth gate and auth flows for authgate.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/. The signing secret and the store are
passed in by the caller; api/ imports from auth/, not the other way around.
"""
