# dbbulk/database.py
"""
Database connection wrapper that provides the small, uniform interface the
bulk operators need from any DB-API 2.0 adapter: prepare, execute, rowcount
and literal quoting.
"""

import importlib
import importlib.util
import os
import logging
from typing import Any, Optional, List, Sequence

from .defaults import settings
from .errors import StatementError, ExecutionError
from .utils import ParamStyle, count_placeholders, sql_literal

logger = logging.getLogger(__name__)

# users can define their own drivers in the config file
_user_drivers = {}


DRIVERS = {
    # PostgreSQL Drivers
    'psycopg2': {
        'database_type': 'postgres',
        'priority': 11,
        'param_map': {'database': 'dbname'},
        'required_params': [{'host', 'database', 'user'}],
        'optional_params': {'port', 'password', 'sslmode', 'connect_timeout', 'application_name',
                            'client_encoding', 'options'},
        'connection_method': 'connection_string',
        'default_port': 5432,
    },
    'psycopg': {  # psycopg3
        'database_type': 'postgres',
        'priority': 12,
        'param_map': {'database': 'dbname'},
        'required_params': [{'host', 'database', 'user'}],
        'optional_params': {'port', 'password', 'sslmode', 'connect_timeout', 'application_name',
                            'client_encoding', 'options'},
        'connection_method': 'connection_string',
        'default_port': 5432,
    },

    # MySQL Drivers
    'pymysql': {
        'database_type': 'mysql',
        'priority': 11,
        'param_map': {'database': 'db', 'password': 'passwd'},
        'required_params': [{'host', 'database', 'user'}],
        'optional_params': {'port', 'password', 'charset', 'sql_mode', 'connect_timeout',
                            'read_timeout', 'write_timeout', 'unix_socket', 'autocommit'},
        'connection_method': 'kwargs',
        'default_port': 3306
    },
    'mysql.connector': {
        'database_type': 'mysql',
        'priority': 12,
        'param_map': {},
        'required_params': [{'host', 'database', 'user'}],
        'optional_params': {'port', 'password', 'charset', 'collation', 'autocommit', 'time_zone',
                            'sql_mode', 'connection_timeout'},
        'connection_method': 'kwargs',
        'default_port': 3306
    },
    'MySQLdb': {
        'database_type': 'mysql',
        'priority': 13,
        'param_map': {'database': 'db', 'password': 'passwd'},
        'required_params': [{'host', 'database', 'user'}],
        'optional_params': {'port', 'password', 'charset', 'sql_mode', 'connect_timeout',
                            'init_command', 'unix_socket'},
        'connection_method': 'kwargs',
        'default_port': 3306
    },

    # SQLite Driver
    'sqlite3': {
        'database_type': 'sqlite',
        'priority': 1,
        'param_map': {},
        'required_params': [{'database'}],
        'optional_params': {'timeout', 'detect_types', 'isolation_level', 'check_same_thread',
                            'cached_statements', 'uri'},
        'connection_method': 'kwargs'
    }
}


def register_user_drivers(drivers_config: dict) -> None:
    """Register drivers from config file."""
    _user_drivers.update(drivers_config)


def get_all_drivers() -> dict:
    """Get combined built-in and user drivers."""
    return {**DRIVERS, **_user_drivers}


def get_drivers_for_database(db_type: str, valid_only: bool = True) -> List[str]:
    """
    Gets the drivers for a database type, sorted by priority.

    Parameters:
        db_type (str): The type of database for which to retrieve drivers.
        valid_only (bool): Only include drivers that are importable (default True).
    """
    all_drivers = get_all_drivers()
    available_drivers = []

    for driver_name, info in all_drivers.items():
        if info['database_type'] != db_type:
            continue
        if valid_only:
            try:
                spec = importlib.util.find_spec(driver_name)
            except ModuleNotFoundError:
                # parent package of a dotted driver name is missing
                spec = None
            if not spec:
                continue
        available_drivers.append(driver_name)

    def sort_key(driver_name):
        priority = all_drivers[driver_name]['priority']
        # User drivers win ties
        if driver_name in _user_drivers:
            priority -= 0.5
        return priority

    available_drivers.sort(key=sort_key)
    return available_drivers


def get_params_for_database(db_type: str) -> set:
    """Get all valid connection parameters for a database type."""
    valid_params = set()
    for driver_info in get_all_drivers().values():
        if driver_info['database_type'] == db_type:
            for param_set in driver_info['required_params']:
                valid_params.update(param_set)
            valid_params.update(driver_info.get('optional_params', set()))
    return valid_params


def validate_connection_params(driver_name: str, **params) -> dict:
    """
    Validate connection parameters against driver requirements.

    Returns:
        Dict of validated parameters, renamed for the driver, extras removed

    Raises:
        ValueError: If the driver is unknown or required parameters are missing
    """
    all_drivers = get_all_drivers()
    if driver_name not in all_drivers:
        raise ValueError(f"Unknown driver: {driver_name}")

    driver_info = all_drivers[driver_name]

    if 'port' not in params and driver_info.get('default_port'):
        params['port'] = driver_info['default_port']

    if not any(required.issubset(params.keys()) for required in driver_info['required_params']):
        raise ValueError(f"Missing required parameters. Need one of: {driver_info['required_params']}")

    param_map = driver_info.get('param_map', {})
    all_valid_params = set(driver_info.get('optional_params', set()))
    for req_set in driver_info['required_params']:
        all_valid_params.update(req_set)

    return {param_map.get(key, key): value
            for key, value in params.items() if key in all_valid_params}


def get_connection_string(**kwargs) -> str:
    """ Get libpq style connection string from keyword arguments."""
    return " ".join(f"{key}={value}" for key, value in kwargs.items() if value is not None)


class PreparedStatement:
    """
    A SQL statement converted once for the driver's paramstyle and bound to
    its own cursor, ready to be executed repeatedly with positional values.

    The SQL passed in uses ``?`` placeholders; ``sql`` holds the converted
    text that is sent to the driver and ``query`` the original.
    """

    def __init__(self, database: 'Database', query: str):
        self.database = database
        self.query = query
        self.num_params = count_placeholders(query)
        self.sql = ParamStyle.convert(query, database.paramstyle)
        try:
            self._cursor = database.raw_cursor()
        except database.interface.Error as e:
            raise StatementError(f"Unable to prepare statement: {e}") from e

    def execute(self, values: Sequence[Any]) -> int:
        """
        Execute the statement with positional values.

        Returns:
            Number of rows affected (0 when the driver does not report it)

        Raises:
            ExecutionError: On a parameter count mismatch or any driver error
        """
        if len(values) != self.num_params:
            raise ExecutionError(
                f"Statement expects {self.num_params} parameters, got {len(values)}")
        try:
            self._cursor.execute(self.sql, tuple(values))
        except self.database.interface.Error as e:
            logger.error(f"Error executing statement on {self.database}: {e}\n"
                         f"SQL: {self.sql}")
            raise ExecutionError(str(e)) from e

        rowcount = getattr(self._cursor, 'rowcount', None)
        if rowcount is None or rowcount < 0:
            logger.debug(f"Driver {self.database.interface.__name__} did not report a rowcount")
            return 0
        return rowcount

    def close(self) -> None:
        self._cursor.close()

    def __repr__(self) -> str:
        return f"PreparedStatement({self.num_params} params, {self.database})"


class Database:
    """
    Database connection wrapper that provides uniform interface
    across different database adapters.
    """

    # Attributes stored locally, others delegated to _connection
    _local_attrs = [
        '_connection', 'server_type', 'database_name', 'interface', 'paramstyle', 'name'
    ]

    def __init__(self, connection, interface, database_name: Optional[str] = None):
        """
        Initialize Database wrapper.

        Args:
            connection: Underlying database connection object
            interface: Database adapter module (sqlite3, pymysql, psycopg2, etc.)
            database_name: Name of the database
        """
        self._connection = connection
        self.interface = interface
        self.database_name = database_name
        self.name = None
        self.paramstyle = getattr(interface, 'paramstyle', ParamStyle.DEFAULT)

        driver_info = get_all_drivers().get(interface.__name__)
        self.server_type = driver_info['database_type'] if driver_info else 'unknown'

    def __getattr__(self, key: str) -> Any:
        """Delegate attribute access to underlying connection."""
        return getattr(self._connection, key)

    def __setattr__(self, key: str, value: Any) -> None:
        """Set attributes locally or delegate to connection."""
        if key in self._local_attrs:
            self.__dict__[key] = value
        else:
            setattr(self._connection, key, value)

    def __str__(self) -> str:
        """String representation of the database connection."""
        name = self.name or self.database_name
        if name:
            return f'Database({name}:{self.server_type})'
        else:
            return f'Database({self.server_type})'

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit - close connection."""
        self.close()

    def raw_cursor(self):
        """Return a cursor from the underlying adapter."""
        return self._connection.cursor()

    def prepare(self, sql: str) -> PreparedStatement:
        """
        Prepare a statement written with ``?`` placeholders.

        Raises:
            StatementError: If sql is empty or the connection cannot provide a cursor
        """
        if not sql or not sql.strip():
            raise StatementError("Cannot prepare an empty statement")
        return PreparedStatement(self, sql)

    def quote(self, value: Any) -> str:
        """Quote a value as a SQL literal. For display only, never for execution."""
        return sql_literal(value)

    @classmethod
    def create(cls, db_type: Optional[str] = None, driver: Optional[str] = None, **kwargs) -> 'Database':
        """
        Factory method to create database connections.

        Args:
            db_type: Database type ('postgres', 'mysql', 'sqlite')
            driver: Preferred driver module name
            **kwargs: Connection parameters

        Returns:
            Database instance
        """
        db_type = db_type or settings.get('default_db_type', 'sqlite')
        all_drivers = get_all_drivers()
        db_driver = None
        driver_name = None
        if driver:
            if driver not in all_drivers:
                raise ValueError(f"Unknown driver: {driver}")
            if all_drivers[driver]['database_type'] != db_type:
                raise ValueError(f"Driver '{driver}' is not compatible with database type '{db_type}'")
            try:
                db_driver = importlib.import_module(driver)
                driver_name = driver
            except ImportError:
                logger.warning(f"Driver '{driver}' not available, falling back to default")

        if db_driver is None:
            for candidate in get_drivers_for_database(db_type):
                try:
                    db_driver = importlib.import_module(candidate)
                    driver_name = candidate
                    break
                except ImportError:
                    pass

        if db_driver is None:
            raise ImportError(f"No database driver found for database type '{db_type}'")

        params = validate_connection_params(driver_name, **kwargs)
        database_name = kwargs.get('database')

        method = all_drivers[driver_name]['connection_method']
        if method == 'connection_string':
            connection = db_driver.connect(get_connection_string(**params))
        elif driver_name == 'sqlite3':
            connection = db_driver.connect(params.pop('database'), **params)
            database_name = os.path.basename(database_name)
        else:
            connection = db_driver.connect(**params)

        logger.debug(f"Connected to {db_type} database {database_name} using {driver_name}")
        return cls(connection, db_driver, database_name)


def postgres(user: str, password: Optional[str] = None, database: str = 'postgres',
             host: str = 'localhost', port: int = 5432, driver: str = None, **kwargs) -> Database:
    """Create PostgreSQL connection."""
    return Database.create('postgres', user=user, password=password, database=database,
                           host=host, port=port, driver=driver, **kwargs)


def mysql(user: str, password: Optional[str] = None, database: str = 'mysql',
          host: str = 'localhost', port: int = 3306, driver: str = None, **kwargs) -> Database:
    """Create MySQL connection."""
    return Database.create('mysql', user=user, password=password, database=database,
                           host=host, port=port, driver=driver, **kwargs)


def sqlite(database: str, **kwargs) -> Database:
    """Create SQLite connection."""
    import sqlite3

    connection = sqlite3.connect(database, **kwargs)
    return Database(connection, sqlite3, os.path.basename(database))
