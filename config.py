import os

class Config:
    MYSQL_USER = os.getenv('MYSQL_USER', 'root')
    MYSQL_PASSWORD = os.getenv('MYSQL_PASSWORD', 'root123')
    MYSQL_HOST = os.getenv('MYSQL_HOST', 'localhost')
    MYSQL_DB = os.getenv('MYSQL_DB', 'ticket_sales_db')
    MYSQL_PORT = int(os.getenv('MYSQL_PORT', 3306))
    MYSQL_CURSORCLASS = 'DictCursor'

    STORAGE_ENDPOINT_URL = os.getenv('STORAGE_ENDPOINT_URL', 'http://localhost:9000')
    STORAGE_PUBLIC_URL = os.getenv('STORAGE_PUBLIC_URL')
    STORAGE_REGION = os.getenv('STORAGE_REGION', 'us-east-1')
    STORAGE_SERVICE_ACCESS_KEY_ID = os.getenv('STORAGE_SERVICE_ACCESS_KEY_ID')
    STORAGE_SERVICE_SECRET_KEY = os.getenv('STORAGE_SERVICE_SECRET_KEY')
    STORAGE_ANON_ACCESS_KEY_ID = os.getenv('STORAGE_ANON_ACCESS_KEY_ID')
    STORAGE_ANON_SECRET_KEY = os.getenv('STORAGE_ANON_SECRET_KEY')
    RECEIPTS_BUCKET = os.getenv('RECEIPTS_BUCKET', 'receipts')

    # Stays under the hosting platform's ~4.5MB request-body ceiling.
    RECEIPT_MAX_BYTES = int(os.getenv('RECEIPT_MAX_BYTES', 4 * 1024 * 1024))

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_ACCESS_LEVEL = os.getenv('LOG_ACCESS_LEVEL', 'WARNING')
    LOG_JSON = os.getenv('LOG_JSON', '0').lower() in ('1', 'true', 'yes')
    APP_ENV = os.getenv('APP_ENV', 'development')


def storage_credentials(config):
    """Pick the privileged key pair when configured, the anonymous one otherwise.

    Returns ``(tier, access_key_id, secret_key)``; the keys may be ``None`` when
    neither tier is set, in which case boto3 falls back to its own chain.
    """
    if config.get('STORAGE_SERVICE_ACCESS_KEY_ID') and config.get('STORAGE_SERVICE_SECRET_KEY'):
        return 'service', config['STORAGE_SERVICE_ACCESS_KEY_ID'], config['STORAGE_SERVICE_SECRET_KEY']
    return 'anon', config.get('STORAGE_ANON_ACCESS_KEY_ID'), config.get('STORAGE_ANON_SECRET_KEY')
