import os


def _env_flag(name, default='false'):
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


class Config:
    """Base configuration"""

    # Compression (zstd's own default level)
    COMPRESSION_LEVEL = int(os.environ.get('LOCALBAK_COMPRESSION_LEVEL', 3))

    # Logging
    LOG_LEVEL = os.environ.get('LOCALBAK_LOG_LEVEL', 'WARNING').upper()
    LOG_FILE = os.environ.get('LOCALBAK_LOG_FILE') or None
    LOG_MAX_BYTES = 10485760  # 10MB
    LOG_BACKUP_COUNT = 10

    # Prompts
    ASSUME_YES = _env_flag('LOCALBAK_ASSUME_YES')


class VerboseConfig(Config):
    """Print out every action"""
    LOG_LEVEL = 'DEBUG'


class TestingConfig(Config):
    """Testing configuration"""
    LOG_LEVEL = 'DEBUG'
    LOG_FILE = None
    ASSUME_YES = False


# Configuration dictionary
config = {
    'verbose': VerboseConfig,
    'testing': TestingConfig,
    'default': Config
}


def get_config(name=None):
    """Look up a configuration class by name (LOCALBAK_ENV, then 'default')"""
    if name is None:
        name = os.environ.get('LOCALBAK_ENV', 'default')
    return config.get(name, Config)
