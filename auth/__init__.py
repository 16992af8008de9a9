"""
auth — Credential authentication module.

Provides:
  • Password hashing (bcrypt, work factor 10)
  • HS256 session token issuing & verification
  • ``CredentialWorkflow`` (register / login / check)
"""
