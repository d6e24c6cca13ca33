#!/usr/bin/env python3
"""
Generate secure secrets for Premier Predictor
Run this script to generate the required SECRET_KEY and CRON_SECRET
"""

import secrets


def generate_secrets():
    """Generate secure random keys for the application"""
    print("🔐 Generating secure secrets for Premier Predictor...")
    print("=" * 50)

    print(f"SECRET_KEY={secrets.token_urlsafe(32)}")
    print(f"CRON_SECRET={secrets.token_urlsafe(32)}")

    print("=" * 50)
    print("📝 Copy these values to your .env file")
    print("⏰ Send CRON_SECRET as 'Authorization: Bearer <secret>' from your scheduler")
    print("⚠️  Keep these secrets secure and never commit them to version control!")


if __name__ == "__main__":
    generate_secrets()
