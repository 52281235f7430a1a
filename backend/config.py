"""
Configuration module for the CRM Backend
Centralizes all environment variables and settings
"""
import os
from pathlib import Path
from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'crm')

# JWT
SECRET_KEY = os.environ.get('SECRET_KEY', 'crm-secret-key-change-in-production')
ALGORITHM = "HS256"

# Environment
ENVIRONMENT = os.environ.get('ENVIRONMENT', 'development')  # 'development' or 'production'
IS_PRODUCTION = ENVIRONMENT == 'production'

# Logging
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

# Default page size for list endpoints
DEFAULT_LIST_LIMIT = int(os.environ.get('DEFAULT_LIST_LIMIT', '100'))
