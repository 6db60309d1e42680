"""
Workspace Portal

Multi-tenant SaaS back end: workspace resolution, registration,
credential/JWT/session authentication, email verification and
password reset flows.
"""

__version__ = "1.0.0"
