"""Configuration module for the pharmacy POS application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    TESTING = False

    # Session Configuration (Production-safe defaults)
    SESSION_COOKIE_SECURE = os.getenv('SESSION_COOKIE_SECURE', 'false').lower() == 'true'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = 43200  # 12 hours (one shift)

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'farmacia')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'farmacia')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'farmacia')

        DATABASE_URL = (
            f"postgresql://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'

    # Checkout
    TAX_RATE = os.getenv('TAX_RATE', '0.16')  # IVA, parsed as Decimal by services
    SALE_NUMBER_PREFIX = os.getenv('SALE_NUMBER_PREFIX', 'VTA-')
    QUOTE_NUMBER_PREFIX = os.getenv('QUOTE_NUMBER_PREFIX', 'PRES-')
    QUOTE_VALID_DAYS = int(os.getenv('QUOTE_VALID_DAYS', '15'))

    # Inventory
    # true keeps the historical behavior: sales may drive stock below zero (logged)
    ALLOW_NEGATIVE_STOCK = os.getenv('ALLOW_NEGATIVE_STOCK', 'true').lower() == 'true'
    STOCK_WRITE_ATTEMPTS = int(os.getenv('STOCK_WRITE_ATTEMPTS', '3'))

    # Business Information (fallback when company_settings is empty)
    BUSINESS_NAME = os.getenv('BUSINESS_NAME', 'Farmacia')
    BUSINESS_LEGAL_NAME = os.getenv('BUSINESS_LEGAL_NAME', '')
    BUSINESS_TAX_ID = os.getenv('BUSINESS_TAX_ID', '')
    BUSINESS_ADDRESS = os.getenv('BUSINESS_ADDRESS', '')
    BUSINESS_PHONE = os.getenv('BUSINESS_PHONE', '')
    BUSINESS_EMAIL = os.getenv('BUSINESS_EMAIL', '')
    BUSINESS_CURRENCY_SYMBOL = os.getenv('BUSINESS_CURRENCY_SYMBOL', '$')

    # Receipts
    RECEIPT_PAPER_WIDTH_MM = int(os.getenv('RECEIPT_PAPER_WIDTH_MM', '80'))
    RECEIPT_FOOTER = os.getenv('RECEIPT_FOOTER', '¡Gracias por su compra!')

    # Redis Cache Configuration
    # Settings rows are read on every checkout and receipt; cache them briefly
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = os.getenv('CACHE_ENABLED', 'true').lower() == 'true'
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))  # seconds
    CACHE_SETTINGS_TTL = int(os.getenv('CACHE_SETTINGS_TTL', '300'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'pharmapos')


class TestConfig(Config):
    """Configuration used by the test-suite (in-memory SQLite, no cache, no CSRF)."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ECHO = False
    WTF_CSRF_ENABLED = False
    CACHE_ENABLED = False
    ALLOW_NEGATIVE_STOCK = True
    TAX_RATE = '0.16'
    RECEIPT_PAPER_WIDTH_MM = 80
    RECEIPT_FOOTER = '¡Gracias por su compra!'
