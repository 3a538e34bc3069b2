# dbbulk/config.py
"""
Configuration management for connections and bulk operators.
Supports YAML configuration files with optional password encryption and global settings.
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional, List

from .defaults import settings
from .database import Database, get_params_for_database, register_user_drivers
from .errors import InvalidConfiguration

try:
    import yaml
except ImportError:
    raise ImportError("PyYAML is required. Install with: pip install PyYAML")

from cryptography.fernet import Fernet, InvalidToken

try:
    import keyring
    HAS_KEYRING = True
except ImportError:
    HAS_KEYRING = False

logger = logging.getLogger(__name__)

ENCRYPTION_KEY_ENV = 'DBBULK_ENCRYPTION_KEY'
KEYRING_SERVICE = 'dbbulk'
OPERATOR_KEYS = {'connection', 'table', 'operation', 'fields', 'batch_size', 'debug',
                 'dialect', 'key_fields'}

_config_manager = None


class ConfigManager:
    """
    Manage dbbulk configuration from YAML files.

    Configuration File Structure
    ----------------------------
    ::

        # dbbulk.yml
        settings:
          default_batch_size: 500
          logging:
            level: DEBUG

        connections:
          warehouse:
            type: mysql
            host: localhost
            database: sales
            user: loader
            encrypted_password: gAAAAABh...

        operators:
          orders_upsert:
            connection: warehouse
            table: orders
            operation: upsert
            fields: [order_id, status, total]
            batch_size: 1000

    Configuration Locations
    -----------------------
    1. File specified in config_file parameter
    2. ``./dbbulk.yml`` or ``./dbbulk.yaml``
    3. ``~/.config/dbbulk.yml`` or ``~/.config/dbbulk.yaml``

    Notes
    -----
    * Connections require a 'type' or 'driver' field
    * Operators require connection, table, operation and fields
    * Passwords written as ``${VAR_NAME}`` are read from the environment
    * Encrypted passwords need DBBULK_ENCRYPTION_KEY or a key in the system keyring
    """

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize config manager and load configuration.

        Raises
        ------
        FileNotFoundError
            If no config file found in any search location
        ValueError
            If config file is invalid or malformed
        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()
        self._fernet = None

        self._apply_settings()

    def _find_config_file(self, config_file: Optional[str]) -> Path:
        """Find the configuration file."""
        if config_file:
            path = Path(config_file)
            if not path.exists():
                raise FileNotFoundError(f"Config file not found: {config_file}")
            return path

        candidates = [
            Path("dbbulk.yml"),
            Path("dbbulk.yaml"),
            Path.home() / ".config" / "dbbulk.yml",
            Path.home() / ".config" / "dbbulk.yaml"
        ]
        for candidate in candidates:
            if candidate.exists():
                return candidate

        raise FileNotFoundError(
            "No config file found. Looked in: " +
            ", ".join(str(c) for c in candidates)
        )

    def _load_config(self) -> Dict[str, Any]:
        """Load and validate configuration file."""
        try:
            with open(self.config_file, 'r') as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to load config file {self.config_file}: {e}") from e

        if not isinstance(config, dict):
            raise ValueError(f"Invalid config file {self.config_file}.")

        for section in ('settings', 'connections', 'operators', 'drivers'):
            if not isinstance(config.get(section, {}), dict):
                raise ValueError(f"Invalid config file {self.config_file}: '{section}' must be a dictionary")

        for name, conn in config.get('connections', {}).items():
            if not isinstance(conn, dict) or ('type' not in conn and 'driver' not in conn):
                raise ValueError(f"Invalid connection '{name}' in {self.config_file}: 'type' or 'driver' is required")

        for name, op in config.get('operators', {}).items():
            if not isinstance(op, dict):
                raise ValueError(f"Invalid operator '{name}' in {self.config_file}: must be a dictionary")
            missing = {'connection', 'table', 'operation', 'fields'} - set(op)
            if missing:
                raise ValueError(f"Invalid operator '{name}' in {self.config_file}: missing {sorted(missing)}")
            unknown = set(op) - OPERATOR_KEYS
            if unknown:
                raise ValueError(f"Invalid operator '{name}' in {self.config_file}: unknown keys {sorted(unknown)}")

        logger.info(f"Loaded config from {self.config_file}")
        return config

    def _apply_settings(self) -> None:
        """Apply global settings and user drivers from config."""
        for key, value in self.config.get('settings', {}).items():
            if isinstance(value, dict) and isinstance(settings.get(key), dict):
                settings[key].update(value)
            else:
                settings[key] = value
        if self.config.get('drivers'):
            register_user_drivers(self.config['drivers'])

    def get_setting(self, key: str, default: Any = None) -> Any:
        """
        Get a setting value from the config.

        Args:
            key: Setting key (supports dot notation like 'logging.level')
            default: Default value if key not found
        """
        value = self.config.get('settings', {})
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def _get_encryption_key(self) -> bytes:
        """Get encryption key from environment variable or keyring."""
        key_str = os.environ.get(ENCRYPTION_KEY_ENV)
        if key_str:
            logger.debug(f"Using {ENCRYPTION_KEY_ENV} from environment")
            return key_str.encode()

        if HAS_KEYRING:
            key_str = keyring.get_password(KEYRING_SERVICE, 'encryption_key')
            if key_str:
                logger.debug("Using encryption key from keyring")
                return key_str.encode()

        raise ValueError(
            f"Encryption key not found. Set {ENCRYPTION_KEY_ENV} or run `dbbulk store-key`.")

    def _get_fernet(self) -> Fernet:
        """Get or create Fernet instance for encryption/decryption."""
        if self._fernet is None:
            self._fernet = Fernet(self._get_encryption_key())
        return self._fernet

    def decrypt_password(self, encrypted_password: str) -> str:
        """Decrypt an encrypted password."""
        try:
            return self._get_fernet().decrypt(encrypted_password.encode()).decode()
        except InvalidToken as e:
            raise ValueError("Failed to decrypt password: invalid token or wrong key") from e

    def encrypt_password(self, password: str) -> str:
        """Encrypt a password for storage."""
        return self._get_fernet().encrypt(password.encode()).decode()

    def get_connection_config(self, name: str) -> Dict[str, Any]:
        """Get configuration for a named connection, with the password resolved."""
        connections = self.config.get('connections', {})

        if name not in connections:
            raise ValueError(
                f"Connection '{name}' not found in config. "
                f"Available connections: {list(connections)}"
            )

        config = connections[name].copy()

        if 'encrypted_password' in config:
            config['password'] = self.decrypt_password(config.pop('encrypted_password'))

        password = config.get('password')
        if isinstance(password, str) and password.startswith('${') and password.endswith('}'):
            env_var = password[2:-1]
            config['password'] = os.environ.get(env_var)
            if config['password'] is None:
                raise ValueError(f"Environment variable {env_var} not set")

        return config

    def list_connections(self) -> List[str]:
        """List all available connection names."""
        return list(self.config.get('connections', {}).keys())

    def get_operator_config(self, name: str) -> Dict[str, Any]:
        """Get configuration for a named bulk operator."""
        operators = self.config.get('operators', {})
        if name not in operators:
            raise ValueError(
                f"Operator '{name}' not found in config. "
                f"Available operators: {list(operators)}"
            )
        return dict(operators[name])

    def list_operators(self) -> List[str]:
        """List all available operator names."""
        return list(self.config.get('operators', {}).keys())


def _get_manager(config_file: Optional[str] = None) -> ConfigManager:
    """Use provided config file or the global instance."""
    global _config_manager
    if config_file:
        return ConfigManager(config_file)
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def set_config_file(config_file: str) -> None:
    """Set the configuration file to use globally."""
    global _config_manager
    _config_manager = ConfigManager(config_file)


def connect(name: str, password: Optional[str] = None, config_file: Optional[str] = None) -> Database:
    """
    Connect to a named database from configuration.

    Example:
        db = connect('warehouse')
    """
    config = _get_manager(config_file).get_connection_config(name)
    if password:
        config['password'] = password
    info = {key: val for key, val in config.items() if key != 'password'}
    logger.debug(f"Connecting to database {name} with config: {info}")

    db_type = config.pop('type', None) or settings.get('default_db_type', 'sqlite')
    driver = config.pop('driver', None)

    allowed_params = get_params_for_database(db_type)
    config = {key: val for key, val in config.items() if key in allowed_params}

    db = Database.create(db_type, driver=driver, **config)
    db.name = name
    return db


def get_setting(key: str, default: Any = None, config_file: Optional[str] = None) -> Any:
    """
    Get a setting value from configuration.

    Example:
        batch_size = get_setting('default_batch_size', 100)
    """
    return _get_manager(config_file).get_setting(key, default)


def bulk_operator(name: str, connection: Optional[Database] = None,
                  config_file: Optional[str] = None, **overrides):
    """
    Build a bulk operator from its definition in the config file.

    Args:
        name: Operator name under ``operators``
        connection: Database to use instead of the configured connection
        config_file: Optional path to config file
        **overrides: Values replacing the configured ones (batch_size, debug, ...)

    Example:
        with bulk_operator('orders_upsert') as upserter:
            upserter.queue_many(orders)
        upserter.connection.commit()
    """
    from .bulk.operator import OPERATORS

    config_mgr = _get_manager(config_file)
    op_config = config_mgr.get_operator_config(name)
    op_config.update({key: val for key, val in overrides.items() if val is not None})

    operation = op_config.pop('operation')
    if operation not in OPERATORS:
        raise InvalidConfiguration(
            f"Operator '{name}' has unknown operation '{operation}'. Must be one of: {list(OPERATORS)}")
    connection_name = op_config.pop('connection')

    if operation != 'upsert':
        for key in ('dialect', 'key_fields'):
            if op_config.pop(key, None) is not None:
                logger.warning(f"Operator '{name}': '{key}' only applies to upsert, ignored")

    opened = connection is None
    if opened:
        connection = connect(connection_name, config_file=config_file)

    logger.debug(f"Building {operation} operator '{name}' for table {op_config['table']}")
    try:
        return OPERATORS[operation](connection, **op_config)
    except BaseException:
        if opened:
            connection.close()
        raise


def _generate_encryption_key() -> str:
    return Fernet.generate_key().decode()


def generate_encryption_key() -> str:
    """
    Generate a new encryption key for password encryption.

    Store it in the DBBULK_ENCRYPTION_KEY environment variable
    or in the keyring with `dbbulk store-key [your key]`.
    """
    key = _generate_encryption_key()
    if HAS_KEYRING:
        print("Key generated.  Store in system keyring with `dbbulk store-key [your key]`")
    else:
        print(f"Key generated.  Store in {ENCRYPTION_KEY_ENV} environment variable")
    return key


def store_key(key: Optional[str] = None, force: bool = False) -> None:
    """Store an encryption key (generated if not given) in the system keyring."""
    if not HAS_KEYRING:
        raise RuntimeError("keyring is not installed. Install with: pip install keyring")
    existing = keyring.get_password(KEYRING_SERVICE, 'encryption_key')
    if existing and not force:
        raise ValueError("An encryption key is already stored. Use force=True to overwrite it.")
    key = key or _generate_encryption_key()
    Fernet(key.encode())  # validate before storing
    keyring.set_password(KEYRING_SERVICE, 'encryption_key', key)
    logger.info("Encryption key stored in system keyring")


def encrypt_password(password: Optional[str] = None, encryption_key: Optional[str] = None) -> str:
    """
    Encrypt a password for use as ``encrypted_password`` in the config file.

    Uses encryption_key if given, otherwise the configured key.
    """
    if password is None:
        import getpass
        password = getpass.getpass('Password to encrypt: ')
    if encryption_key:
        fernet = Fernet(encryption_key.encode())
    else:
        key_str = os.environ.get(ENCRYPTION_KEY_ENV)
        if not key_str and HAS_KEYRING:
            key_str = keyring.get_password(KEYRING_SERVICE, 'encryption_key')
        if not key_str:
            raise ValueError(f"Encryption key not found. Set {ENCRYPTION_KEY_ENV} or run `dbbulk store-key`.")
        fernet = Fernet(key_str.encode())
    return fernet.encrypt(password.encode()).decode()
