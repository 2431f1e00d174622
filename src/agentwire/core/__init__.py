"""
Core Layer - Configuration and Defaults
=======================================

Modules:
    constants: Protocol constants, tuning defaults and the Settings model
        (pydantic-settings, dotenv chain .env > .env.{APP_ENV} > .env.local)
"""
