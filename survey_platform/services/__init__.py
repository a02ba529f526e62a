"""
Domain services: usage limits, invitations, slugs, survey visibility,
organizations and billing.
"""
