# (c) Copyright Datacraft, 2026
"""Passkey and TOTP authentication server."""
