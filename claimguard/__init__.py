"""
ClaimGuard - Claim verification firewall for AI-generated code

Extracts checkable claims from generated content, verifies them against
independent local sources and gates agent actions on the result.
"""

__version__ = "1.0.0"
