# dbbulk/cli.py

import argparse
import csv
import logging
import sys

from . import config
from .errors import BulkError

logger = logging.getLogger(__name__)


def load_csv(operator_name: str, csv_file: str, config_file: str = None,
             debug: bool = False, batch_size: int = None, encoding: str = 'utf-8-sig') -> int:
    """
    Queue every row of a CSV file through a configured bulk operator.

    Returns the process exit status.
    """
    try:
        operator = config.bulk_operator(operator_name, config_file=config_file,
                                        debug=True if debug else None, batch_size=batch_size)
    except BulkError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    db = operator.connection
    try:
        with open(csv_file, newline='', encoding=encoding) as f:
            reader = csv.DictReader(f)
            for row in reader:
                if operator.queue(row):
                    print(f"\r{operator.flushed_operations:,} rows written", end='', file=sys.stderr)
        operator.flush()
        if not operator.debug:
            db.commit()
    except BulkError as e:
        logger.error(f"Load of {csv_file} through '{operator_name}' failed: {e}")
        print(f"\nError: {e}", file=sys.stderr)
        return 1
    finally:
        operator.close()
        db.close()

    print(f"\n{operator.total_operations:,} operations, {operator.affected_rows:,} rows affected",
          file=sys.stderr)
    for query in operator.debug_queries:
        print(f"{query};")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(prog='dbbulk', description='dbbulk command-line utilities')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # load
    load_parser = subparsers.add_parser('load', help='Load a CSV file through a configured bulk operator')
    load_parser.add_argument('operator', help='Operator name from the config file')
    load_parser.add_argument('csv_file', help='CSV file with a header row')
    load_parser.add_argument('--config', dest='config_file', help='Config file path')
    load_parser.add_argument('--debug', action='store_true',
                             help='Print the SQL instead of writing to the database')
    load_parser.add_argument('--batch-size', type=int, help='Override the configured batch size')

    # generate-key
    subparsers.add_parser('generate-key', help='Generate encryption key')

    # store-key
    key_parser = subparsers.add_parser('store-key',
                                       help='Store encryption key in system keyring (generate if not provided)')
    key_parser.add_argument('key', nargs='?', default=None,
                            help='Encryption key to store. If omitted, a new key is generated and stored.')
    key_parser.add_argument('--force', action='store_true',
                            help='Overwrite existing encryption key in system keyring')

    # encrypt-password
    pwd_parser = subparsers.add_parser('encrypt-password', help='Encrypt a password')
    pwd_parser.add_argument('password', nargs='?', help='Password to encrypt')

    args = parser.parse_args(argv)

    if args.command == 'load':
        return load_csv(args.operator, args.csv_file, config_file=args.config_file,
                        debug=args.debug, batch_size=args.batch_size)
    elif args.command == 'generate-key':
        print(config.generate_encryption_key())
    elif args.command == 'store-key':
        config.store_key(args.key, force=args.force)
    elif args.command == 'encrypt-password':
        print(config.encrypt_password(args.password))
    return 0


if __name__ == '__main__':
    sys.exit(main())
