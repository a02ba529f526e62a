"""
Survey Platform API

Backend for the multi-tenant survey SaaS: surveys and public responses,
organizations with RBAC, plan limits, trials, Stripe billing and sys-admin
tooling.
"""

from setuptools import setup, find_packages

setup(
    name="survey-platform-api",
    version="1.0.0",
    description="Survey Platform API",
    author="Survey Platform",
    packages=find_packages(include=["survey_platform", "survey_platform.*"]),
    python_requires=">=3.11",
    install_requires=[
        # Web framework
        "fastapi>=0.110.0",
        "uvicorn[standard]>=0.27.0",
        "pydantic[email]>=2.5.0",
        "pydantic-settings>=2.1.0",

        # PostgreSQL support
        "sqlalchemy[asyncio]>=2.0.25",
        "asyncpg>=0.29.0",

        # Database migrations
        "alembic>=1.13.0",

        # Session tokens and password hashing
        "python-jose[cryptography]>=3.3.0",
        "bcrypt>=4.1.0",

        # Payments
        "stripe>=8.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
            "httpx>=0.26.0",
            "aiosqlite>=0.19.0",
            "black>=23.10.0",
            "flake8>=6.1.0",
            "mypy>=1.7.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3.11",
        "License :: Other/Proprietary License",
    ],
)
